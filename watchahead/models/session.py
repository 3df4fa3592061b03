"""Pydantic models for playback sessions reported by the media server."""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, model_validator


class SeriesIdentity(BaseModel):
    """How a series is identified: TVDB id when known, display name otherwise."""
    model_config = ConfigDict(frozen=True)

    external_id: Optional[int] = None
    name: Optional[str] = None

    @model_validator(mode="after")
    def _require_one(self) -> "SeriesIdentity":
        if self.external_id is None and not self.name:
            raise ValueError("a series needs an external id or a name")
        return self

    def __str__(self) -> str:
        if self.external_id is not None:
            return f"tvdb:{self.external_id}" + (f" ({self.name})" if self.name else "")
        return repr(self.name)


class PlaybackSession(BaseModel):
    """One user currently watching one episode."""

    user_id: str = ""
    user_name: str = ""
    library_id: Optional[str] = None
    series: SeriesIdentity
    season_number: Optional[int] = None
    episode_number: Optional[int] = None
    is_pilot: bool = False

    @property
    def has_position(self) -> bool:
        return self.season_number is not None and self.episode_number is not None

    def describe(self) -> str:
        season = "?" if self.season_number is None else f"{self.season_number:02d}"
        episode = "?" if self.episode_number is None else f"{self.episode_number:02d}"
        return f"{self.series} S{season}E{episode} ({self.user_name or self.user_id})"
