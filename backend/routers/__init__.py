"""Routers module - FastAPI route handlers"""

from . import config, fix

__all__ = ["config", "fix"]
