"""Library client interface consumed by the decision engine."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Sequence

from watchahead.models.library import EpisodeState, SeriesState
from watchahead.models.session import SeriesIdentity


class LibraryClient(ABC):
    @abstractmethod
    async def probe(self) -> None:
        ...

    @abstractmethod
    async def find_series(self, identity: SeriesIdentity) -> SeriesState:
        """Look the series up, external id first; raises SeriesNotFound."""

    @abstractmethod
    async def get_episodes(self, series_id: int) -> list[EpisodeState]:
        ...

    @abstractmethod
    async def request_episodes(self, series_id: int, episodes: Sequence[EpisodeState]) -> None:
        """Monitor and search exactly these episodes."""

    @abstractmethod
    async def request_season(self, series_id: int, season_number: int) -> None:
        """Monitor the season and search for it as a whole."""

    @abstractmethod
    async def enable_future_seasons(self, series_id: int) -> None:
        """Make the library pick up seasons announced later."""
