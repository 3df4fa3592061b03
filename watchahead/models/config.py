"""Pydantic models for application configuration."""
from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class MediaServerType(str, Enum):
    JELLYFIN = "jellyfin"
    EMBY = "emby"
    PLEX = "plex"
    TAUTULLI = "tautulli"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()


class MediaServerConfig(BaseModel):
    """Connection settings for the playback server plus optional allow-lists."""
    model_config = ConfigDict(extra="allow")

    type: MediaServerType = MediaServerType.JELLYFIN
    url: str
    api_key: str = Field(default="", repr=False)
    users: list[str] = Field(default_factory=list)  # user IDs or names, empty = everyone
    libraries: list[str] = Field(default_factory=list)  # library names, empty = all

    @field_validator("url")
    @classmethod
    def _strip_url(cls, v: str) -> str:
        return v.strip().rstrip("/")


class SonarrConfig(BaseModel):
    """Connection settings for Sonarr."""
    model_config = ConfigDict(extra="allow")

    url: str
    api_key: str = Field(default="", repr=False)
    exclude_tag: Optional[str] = None

    @field_validator("url")
    @classmethod
    def _strip_url(cls, v: str) -> str:
        return v.strip().rstrip("/")


class StatusConfig(BaseModel):
    """Optional status HTTP API."""
    model_config = ConfigDict(extra="allow")

    enabled: bool = False
    host: str = "0.0.0.0"
    port: int = Field(default=9797, ge=1, le=65535)


class AppConfig(BaseModel):
    """Root application configuration."""
    model_config = ConfigDict(extra="allow")

    interval: int = Field(default=900, ge=1)  # seconds between polls
    prefetch_num: int = Field(default=2, ge=1)
    request_seasons: bool = True
    connection_retries: int = Field(default=0, ge=0)
    max_concurrent_sessions: int = Field(default=4, ge=1)
    name_match_threshold: int = Field(default=90, ge=0, le=100)
    log_level: str = "INFO"
    log_dir: Optional[str] = None
    media_server: MediaServerConfig
    sonarr: SonarrConfig
    status: StatusConfig = Field(default_factory=StatusConfig)

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level: {v!r}")
        return level
