"""Configuration API endpoints"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter
from pydantic import BaseModel

from services.config_manager import ConfigManager

router = APIRouter()

SECRET_FIELDS = {
    "gitlab": "token",
    "gemini": "apiKey",
    "openai": "apiKey",
    "vllm": "apiKey",
}


class ConfigUpdateRequest(BaseModel):
    """Request to update configuration"""

    gitlab: dict | None = None
    redis: dict | None = None
    undo: dict | None = None
    fix: dict | None = None
    provider: str | None = None
    gemini: dict | None = None
    openai: dict | None = None
    vllm: dict | None = None


class ConfigResponse(BaseModel):
    """Configuration response"""

    gitlab: dict
    redis: dict
    undo: dict
    fix: dict
    provider: str
    gemini: dict
    openai: dict
    vllm: dict


def mask_key(key: str) -> str:
    if not key:
        return ""
    if len(key) <= 8:
        return "*" * len(key)
    return key[:4] + "*" * (len(key) - 8) + key[-4:]


@router.get("", response_model=ConfigResponse)
async def get_config() -> ConfigResponse:
    """Get current configuration"""
    config = ConfigManager.get_instance().get_config()

    # Mask secrets
    for section, field in SECRET_FIELDS.items():
        values = config.get(section, {})
        values[field] = mask_key(values.get(field, ""))

    return ConfigResponse(
        gitlab=config.get("gitlab", {}),
        redis={"url": mask_key(config.get("redis", {}).get("url", ""))},
        undo=config.get("undo", {}),
        fix=config.get("fix", {}),
        provider=config.get("provider", "gemini"),
        gemini=config.get("gemini", {}),
        openai=config.get("openai", {}),
        vllm=config.get("vllm", {}),
    )


@router.put("")
async def update_config(request: ConfigUpdateRequest) -> dict[str, Any]:
    """Update configuration"""
    config_manager = ConfigManager.get_instance()
    current_config = config_manager.get_stored_config()

    # Update only provided fields
    if request.provider:
        current_config["provider"] = request.provider
    for section in ("gitlab", "redis", "undo", "fix", "gemini", "openai", "vllm"):
        values = getattr(request, section)
        if values:
            current_config[section] = {**current_config.get(section, {}), **values}

    config_manager.save_config(current_config)

    return {"status": "success", "message": "Configuration updated"}
