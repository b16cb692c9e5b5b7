"""
Review Fix Backend - FastAPI Application Entry Point
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from routers import config, fix
from services.config_manager import ConfigManager
from services.undo_store import create_undo_store

logger = logging.getLogger("review_fix")


def configure_logging(level: str = "INFO"):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager - startup and shutdown logic"""
    # Startup: Initialize singleton services
    config_manager = ConfigManager.get_instance()
    settings = config_manager.get_config()
    configure_logging(settings.get("logging", {}).get("level", "INFO"))
    logger.info("[Backend] Starting Review Fix Backend...")

    # Connect the undo store and share it with the fix router
    undo_store = create_undo_store(settings)
    fix.set_undo_store(undo_store)
    if not await undo_store.is_available():
        logger.warning("[Backend] Undo store is not reachable - applied fixes will not be reversible")

    yield
    # Shutdown: Cleanup
    logger.info("[Backend] Shutting down Review Fix Backend...")
    fix.set_undo_store(None)
    await undo_store.close()


app = FastAPI(
    title="Review Fix Backend",
    description="Apply and undo AI-drafted review fixes on merge request branches",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(
    fix.router,
    prefix="/api/projects/{project_id}/merge-requests/{mr_iid}/fix",
    tags=["fix"],
)
app.include_router(config.router, prefix="/api/config", tags=["config"])


@app.get("/health")
async def health_check():
    """Health check endpoint"""
    undo_store = fix.get_undo_store()
    undo_available = undo_store is not None and await undo_store.is_available()
    return {
        "status": "healthy",
        "service": "review-fix-backend",
        "undoStore": "available" if undo_available else "unavailable",
    }


if __name__ == "__main__":
    import uvicorn

    server = ConfigManager.get_instance().get_config().get("server", {})
    uvicorn.run(app, host=server.get("host", "0.0.0.0"), port=server.get("port", 8000))
