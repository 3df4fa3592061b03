"""Dedup cache — remembers which (series, season) pairs were recently acted on."""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable

from watchahead.models.probe import DedupEntry, DedupKind

logger = logging.getLogger(__name__)

RETENTION_SECONDS = 7 * 24 * 60 * 60


class DedupCache:
    """In-memory, time-windowed memory of acquisition decisions.

    Suppresses a new search for a season while an earlier one is probably
    still running. Entries expire lazily ``retention`` seconds after they were
    recorded; nothing is persisted, so a restart forgets everything.

    Each entry also carries a :class:`DedupKind`, so requesting a season and
    later enabling new-season monitoring for it are remembered separately.
    """

    def __init__(self, retention: float = RETENTION_SECONDS, clock: Callable[[], float] = time.time):
        self.retention = retention
        self._clock = clock
        self._entries: dict[tuple[int, int, DedupKind], float] = {}
        self._lock = asyncio.Lock()

    def _expired(self, recorded_at: float, now: float) -> bool:
        return now - recorded_at >= self.retention

    async def already_handled(
        self, series_id: int, season_number: int, kind: DedupKind = DedupKind.SEASON
    ) -> bool:
        async with self._lock:
            key = (series_id, season_number, kind)
            recorded_at = self._entries.get(key)
            if recorded_at is None:
                return False
            if self._expired(recorded_at, self._clock()):
                del self._entries[key]
                return False
            return True

    async def record(self, series_id: int, season_number: int, kind: DedupKind = DedupKind.SEASON) -> None:
        async with self._lock:
            self._entries[(series_id, season_number, kind)] = self._clock()
        logger.debug(f"Dedup: recorded series {series_id} season {season_number} ({kind.value})")

    async def prune(self) -> int:
        """Drop expired entries; returns how many were removed."""
        async with self._lock:
            now = self._clock()
            stale = [k for k, ts in self._entries.items() if self._expired(ts, now)]
            for k in stale:
                self._entries.pop(k, None)
            return len(stale)

    async def entries(self) -> list[DedupEntry]:
        await self.prune()
        async with self._lock:
            return [
                DedupEntry(series_id=series_id, season_number=season, kind=kind, recorded_at=ts)
                for (series_id, season, kind), ts in sorted(self._entries.items())
            ]
