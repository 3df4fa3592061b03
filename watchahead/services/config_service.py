"""Configuration service — loads and validates the JSON config file."""
from __future__ import annotations

import json
import logging
import os
from typing import Optional

from pydantic import ValidationError

from watchahead.errors import ConfigError
from watchahead.models.config import AppConfig

logger = logging.getLogger(__name__)

# Data directory - use environment variable or default to /data (Docker) or ./data (local)
DATA_DIR = os.environ.get("DATA_DIR", "/data" if os.path.exists("/data") else "./data")
DEFAULT_CONFIG_FILE = os.path.join(DATA_DIR, "config.json")

# Credentials may be kept out of the config file
ENV_OVERRIDES = {
    "MEDIA_SERVER_API_KEY": ("media_server", "api_key"),
    "SONARR_API_KEY": ("sonarr", "api_key"),
}


class ConfigService:
    """Loads the application config once at startup.

    The file is plain JSON mirroring :class:`AppConfig`. API keys can also be
    supplied through ``MEDIA_SERVER_API_KEY`` and ``SONARR_API_KEY``, which
    take precedence over the file.
    """

    def __init__(self, config_file: Optional[str] = None):
        self.config_file = config_file or os.environ.get("WATCHAHEAD_CONFIG", DEFAULT_CONFIG_FILE)
        self._config: Optional[AppConfig] = None

    def _read(self) -> dict:
        if not os.path.exists(self.config_file):
            raise ConfigError(f"config file not found: {self.config_file}")
        try:
            with open(self.config_file) as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigError(f"cannot read {self.config_file}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigError(f"{self.config_file}: top level must be an object")
        return data

    @staticmethod
    def _apply_env(data: dict) -> dict:
        for env, (section, key) in ENV_OVERRIDES.items():
            value = os.environ.get(env)
            if value:
                section_data = data.setdefault(section, {})
                if isinstance(section_data, dict):
                    section_data[key] = value
        return data

    def load(self) -> AppConfig:
        data = self._apply_env(self._read())
        try:
            self._config = AppConfig.model_validate(data)
        except ValidationError as e:
            raise ConfigError(f"invalid configuration in {self.config_file}:\n{e}") from e
        logger.debug(f"Loaded configuration from {self.config_file}")
        return self._config

    @property
    def config(self) -> AppConfig:
        if self._config is None:
            return self.load()
        return self._config
