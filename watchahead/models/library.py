"""Library-side state: series, seasons and episodes as Sonarr sees them."""
from __future__ import annotations

from typing import NamedTuple, Optional

from pydantic import BaseModel, Field


class EpisodeRef(NamedTuple):
    season_number: int
    episode_number: int

    def __str__(self) -> str:
        return f"S{self.season_number:02d}E{self.episode_number:02d}"


class SeasonState(BaseModel):
    """Per-season counters.

    ``statistics_available`` is False when the library did not report
    statistics for the season. The counts are then meaningless and must not
    be read as "nothing downloaded" nor as "everything downloaded".
    """

    season_number: int
    monitored: bool = False
    episode_count: int = 0
    downloaded_episode_count: int = 0
    statistics_available: bool = False

    @property
    def fully_downloaded(self) -> Optional[bool]:
        if not self.statistics_available:
            return None
        return self.downloaded_episode_count >= self.episode_count


class SeriesState(BaseModel):
    series_id: int
    title: str = ""
    tvdb_id: Optional[int] = None
    monitored: bool = False
    future_seasons_monitored: bool = False
    tags: set[str] = Field(default_factory=set)
    seasons: list[SeasonState] = Field(default_factory=list)

    def season(self, season_number: int) -> Optional[SeasonState]:
        for s in self.seasons:
            if s.season_number == season_number:
                return s
        return None

    @property
    def regular_seasons(self) -> list[SeasonState]:
        """Seasons in ascending order, specials (season 0) excluded."""
        return sorted((s for s in self.seasons if s.season_number > 0), key=lambda s: s.season_number)

    @property
    def last_known_season(self) -> Optional[int]:
        regular = self.regular_seasons
        return regular[-1].season_number if regular else None


class EpisodeState(BaseModel):
    episode_id: int
    season_number: int
    episode_number: int
    has_file: bool = False
    monitored: bool = False

    @property
    def ref(self) -> EpisodeRef:
        return EpisodeRef(self.season_number, self.episode_number)


class EpisodeWindow(BaseModel):
    """The lookahead a session requires.

    ``episodes`` are the concrete upcoming episodes, in order. ``seasons``
    lists every season the window touches (concrete or not). Seasons in
    ``unknown_seasons`` have no statistics, so their episodes could not be
    enumerated and the season is targeted as a whole.
    """

    episodes: list[EpisodeRef] = Field(default_factory=list)
    seasons: list[int] = Field(default_factory=list)
    unknown_seasons: list[int] = Field(default_factory=list)
    pilot: bool = False
    needs_future_seasons: bool = False
    last_known_season: Optional[int] = None
