"""
Configuration Manager - Handle backend settings persistence
GitLab, Redis and LLM provider settings live in a JSON file; a few
environment variables override it for container deployments
"""

from __future__ import annotations

import copy
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)

# Environment variable -> (section, key)
ENV_OVERRIDES = {
    "GITLAB_BASE_URL": ("gitlab", "baseUrl"),
    "GITLAB_TOKEN": ("gitlab", "token"),
    "REDIS_URL": ("redis", "url"),
}


class ConfigManager:
    """Manage configuration persistence"""

    _instance = None
    _config_file = None

    def __init__(self, config_dir: str | None = None):
        try:
            # 1st: explicit argument or environment variable
            config_dir = config_dir or os.environ.get("REVIEW_FIX_CONFIG_DIR")

            # 2nd: home directory ~/.review_fix
            if not config_dir:
                config_dir = os.path.expanduser("~/.review_fix")

            config_path = Path(config_dir)
            try:
                config_path.mkdir(parents=True, exist_ok=True)
                self._config_file = config_path / "config.json"
            except OSError as e:
                logger.warning("Cannot write to %s: %s", config_dir, e)
                self._config_file = None

            # 3rd: fall back to the temp directory
            if not self._config_file:
                tmp_dir = Path(tempfile.gettempdir()) / "review_fix"
                tmp_dir.mkdir(parents=True, exist_ok=True)
                self._config_file = tmp_dir / "config.json"
                logger.warning("Using temporary config path: %s", self._config_file)

        except OSError as e:
            logger.error("Critical error in ConfigManager init: %s", e)
            self._config_file = Path(tempfile.gettempdir()) / "review_fix_config_fallback.json"

        self._config = self._load_config()

    @classmethod
    def get_instance(cls) -> "ConfigManager":
        """Get singleton instance"""
        if cls._instance is None:
            cls._instance = ConfigManager()
        return cls._instance

    @classmethod
    def reset_instance(cls):
        cls._instance = None

    def _load_stored_config(self) -> dict[str, Any]:
        """Load configuration from file, defaults filling missing sections"""
        config = self._default_config()
        if self._config_file.exists():
            try:
                with open(self._config_file) as f:
                    stored = json.load(f)
            except (json.JSONDecodeError, OSError) as e:
                logger.error("Error loading config: %s", e)
                stored = {}
            for key, value in stored.items():
                if isinstance(value, dict) and isinstance(config.get(key), dict):
                    config[key] = {**config[key], **value}
                else:
                    config[key] = value
        return config

    def _load_config(self) -> dict[str, Any]:
        return self._apply_env_overrides(self._load_stored_config())

    def _apply_env_overrides(self, config: dict[str, Any]) -> dict[str, Any]:
        for env_name, (section, key) in ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value:
                config.setdefault(section, {})[key] = value
        return config

    def _default_config(self) -> dict[str, Any]:
        """Get default configuration"""
        return {
            "gitlab": {
                "baseUrl": "https://gitlab.com",
                "token": "",
                "timeoutSeconds": 30,
            },
            "redis": {"url": ""},  # empty: in-memory undo store
            "undo": {"ttlSeconds": 24 * 60 * 60, "keyPrefix": "fix_undo:"},
            "fix": {"contextLines": 3},
            "provider": "gemini",
            "gemini": {"apiKey": "", "model": "gemini-2.5-flash"},
            "openai": {"apiKey": "", "model": "gpt-4"},
            "vllm": {
                "endpoint": "http://localhost:8000",
                "apiKey": "",
                "model": "meta-llama/Llama-2-7b-chat-hf",
            },
            "logging": {"level": "INFO"},
            "server": {"host": "0.0.0.0", "port": 8000},
        }

    def get_config(self) -> dict[str, Any]:
        """Get current configuration"""
        # Reload config from file to ensure we have the latest
        self._config = self._load_config()
        return copy.deepcopy(self._config)

    def get_stored_config(self) -> dict[str, Any]:
        """Configuration as persisted, without environment overrides"""
        return self._load_stored_config()

    def save_config(self, config: dict[str, Any]):
        """Save configuration to file"""
        # Merge with the stored config; environment values are never persisted
        stored = self._load_stored_config()
        stored.update(config)

        # Ensure config directory exists
        self._config_file.parent.mkdir(parents=True, exist_ok=True)

        try:
            with open(self._config_file, "w") as f:
                json.dump(stored, f, indent=2)
        except OSError as e:
            raise RuntimeError(f"Failed to save config: {e}") from e

        self._config = self._apply_env_overrides(copy.deepcopy(stored))
