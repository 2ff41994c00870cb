"""
Configuration Manager - Handle backend settings persistence
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class ConfigManager:
    """Manage configuration persistence"""

    _instance = None
    _config_file = None

    def __init__(self):
        try:
            # 1. Environment variable
            config_dir = os.environ.get("REWRITE_AGENT_CONFIG_DIR")

            # 2. Home directory ~/.rewrite_agent
            if not config_dir:
                config_dir = os.path.expanduser("~/.rewrite_agent")

            config_path = Path(config_dir)
            try:
                config_path.mkdir(parents=True, exist_ok=True)
                self._config_file = config_path / "config.json"
            except OSError as e:
                logger.warning("Cannot write to %s: %s", config_dir, e)
                self._config_file = None

            # 3. Fall back to the temp dir when the path is unusable
            if not self._config_file:
                tmp_dir = Path(tempfile.gettempdir()) / "rewrite_agent"
                tmp_dir.mkdir(parents=True, exist_ok=True)
                self._config_file = tmp_dir / "config.json"
                logger.info("Using temporary config path: %s", self._config_file)

        except OSError as e:
            logger.error("Critical error in ConfigManager init: %s", e)
            self._config_file = Path(tempfile.gettempdir()) / "rewrite_agent_config_fallback.json"

        self._config = self._load_config()

    @classmethod
    def get_instance(cls) -> "ConfigManager":
        """Get singleton instance"""
        if cls._instance is None:
            cls._instance = ConfigManager()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        cls._instance = None

    def _load_config(self) -> dict[str, Any]:
        """Load configuration from file, filling in defaults for missing sections"""
        config = self._default_config()
        if not self._config_file.exists():
            return config

        try:
            with open(self._config_file) as f:
                stored = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            logger.error("Error loading config: %s", e)
            return config

        for key, value in stored.items():
            if isinstance(value, dict) and isinstance(config.get(key), dict):
                config[key] = {**config[key], **value}
            else:
                config[key] = value
        return config

    def _default_config(self) -> dict[str, Any]:
        """Get default configuration"""
        return {
            "provider": "openai",
            "openai": {"apiKey": "", "model": "gpt-4", "endpoint": "https://api.openai.com"},
            "vllm": {
                "endpoint": "http://localhost:8000",
                "apiKey": "",
                "model": "mistralai/Mistral-7B-Instruct-v0.1",
            },
            "vertex": {
                "projectId": "",
                "locationId": "us-central1",
                "accessToken": "",
                "textModel": "text-bison@001",
                "dialogModel": "chat-bison@001",
            },
            # Unset values fall back to the provider defaults
            "generation": {},
            "operation": {"timeoutSeconds": 60, "maxRetries": 0, "shuffleSeed": None},
            "server": {"host": "0.0.0.0", "port": 8000},
        }

    def get_config(self) -> dict[str, Any]:
        """Get current configuration"""
        # Reload config from file to ensure we have the latest
        self._config = self._load_config()
        return self._config.copy()

    def save_config(self, config: dict[str, Any]):
        """Save configuration to file"""
        # Merge with existing config
        self._config.update(config)

        # Ensure config directory exists
        self._config_file.parent.mkdir(parents=True, exist_ok=True)

        # Write to file
        try:
            with open(self._config_file, "w") as f:
                json.dump(self._config, f, indent=2)
        except OSError as e:
            raise RuntimeError(f"Failed to save config: {e}")

    def get(self, key: str, default=None):
        """Get specific config value"""
        return self._config.get(key, default)
