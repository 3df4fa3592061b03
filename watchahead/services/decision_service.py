"""Decision service — turns a playback session into acquisition requests."""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Optional

from watchahead.errors import SeriesNotFound, WatchaheadError
from watchahead.models.library import EpisodeState, EpisodeWindow, SeriesState
from watchahead.models.probe import Decision, DedupKind, ReconcileResult
from watchahead.models.session import PlaybackSession
from watchahead.services.window_service import resolve_window

if TYPE_CHECKING:
    from watchahead.services.dedup_service import DedupCache
    from watchahead.services.filter_service import SessionFilter
    from watchahead.services.library import LibraryClient

logger = logging.getLogger(__name__)


class DecisionService:
    """Reconciles sessions against the library.

    Per session the outcome is, in order of precedence: skipped (no usable
    position), excluded (allow-lists or exclude tag), already handled (dedup
    cache), satisfied (everything downloaded), future seasons (the window runs
    past the last known season) or a season/episode request.

    Library failures never escape ``reconcile``; they are logged and reported
    as ``Decision.FAILED`` so the next poll can try again.
    """

    def __init__(
        self,
        library: "LibraryClient",
        dedup: "DedupCache",
        prefetch_num: int = 2,
        request_seasons: bool = True,
        session_filter: Optional["SessionFilter"] = None,
        exclude_tag: Optional[str] = None,
    ):
        self.library = library
        self.dedup = dedup
        self.prefetch_num = prefetch_num
        self.request_seasons = request_seasons
        self.session_filter = session_filter
        self.exclude_tag = exclude_tag
        # series id -> (lock, number of reconciles holding or waiting for it)
        self._series_locks: dict[int, tuple[asyncio.Lock, int]] = {}

    @asynccontextmanager
    async def _series_lock(self, series_id: int):
        """Serialize work on one series; the lock is dropped once nobody holds or awaits it."""
        lock, users = self._series_locks.get(series_id, (None, 0))
        if lock is None:
            lock = asyncio.Lock()
        self._series_locks[series_id] = (lock, users + 1)
        try:
            async with lock:
                yield
        finally:
            _, users = self._series_locks[series_id]
            if users <= 1:
                del self._series_locks[series_id]
            else:
                self._series_locks[series_id] = (lock, users - 1)

    async def reconcile(self, session: PlaybackSession) -> ReconcileResult:
        if not session.has_position:
            logger.debug(f"No episode position in session, skipping: {session.describe()}")
            return ReconcileResult(decision=Decision.SKIPPED, detail="no episode position")

        if self.session_filter is not None and not self.session_filter.accepts(session):
            return ReconcileResult(decision=Decision.EXCLUDED, detail="user or library not allowed")

        try:
            series = await self.library.find_series(session.series)
        except SeriesNotFound as e:
            logger.warning(f"{e} (now playing {session.describe()})")
            return ReconcileResult(decision=Decision.NOT_FOUND, detail=str(e))
        except WatchaheadError as e:
            logger.error(f"Cannot look up {session.series} in the library: {e}")
            return ReconcileResult(decision=Decision.FAILED, detail=str(e))

        if self.exclude_tag and self.exclude_tag in series.tags:
            logger.debug(f"'{series.title}' is tagged '{self.exclude_tag}', skipping")
            return ReconcileResult(decision=Decision.EXCLUDED, series_id=series.series_id, detail="exclude tag")

        window = resolve_window(session, series, self.prefetch_num)
        if window is None:
            return ReconcileResult(decision=Decision.SKIPPED, series_id=series.series_id, detail="no window")

        logger.info(f"'{series.title}' now playing {session.describe()}")
        async with self._series_lock(series.series_id):
            try:
                if window.needs_future_seasons:
                    return await self._future_seasons(series, window)
                return await self._request_window(series, window)
            except WatchaheadError as e:
                logger.error(f"Failed to process '{series.title}' ({session.series}), seasons {window.seasons}: {e}")
                return ReconcileResult(
                    decision=Decision.FAILED, series_id=series.series_id, seasons=window.seasons, detail=str(e)
                )

    async def _future_seasons(self, series: SeriesState, window: EpisodeWindow) -> ReconcileResult:
        sid = series.series_id
        last = window.last_known_season
        if await self.dedup.already_handled(sid, last, DedupKind.FUTURE_SEASONS):
            logger.debug(f"'{series.title}' season {last} handled recently")
            return ReconcileResult(decision=Decision.ALREADY_HANDLED, series_id=sid, seasons=[last])

        last_state = series.season(last)
        if series.future_seasons_monitored and last_state is not None and last_state.monitored:
            logger.debug(f"'{series.title}' already monitors new seasons")
            return ReconcileResult(decision=Decision.SATISFIED, series_id=sid, seasons=[last])

        logger.info(f"Season after {last} of '{series.title}' not known, monitoring new seasons instead")
        await self.library.enable_future_seasons(sid)
        await self.dedup.record(sid, last, DedupKind.FUTURE_SEASONS)
        return ReconcileResult(decision=Decision.FUTURE_SEASONS, series_id=sid, seasons=[last])

    async def _request_window(self, series: SeriesState, window: EpisodeWindow) -> ReconcileResult:
        sid = series.series_id
        targets = [s for s in window.seasons if not await self.dedup.already_handled(sid, s)]
        if not targets:
            logger.debug(f"'{series.title}' seasons {window.seasons} handled recently")
            return ReconcileResult(decision=Decision.ALREADY_HANDLED, series_id=sid, seasons=window.seasons)

        # Counts are trusted only when the library reported them
        incomplete = [s for s in targets if series.season(s).fully_downloaded is not True]
        if not incomplete:
            logger.debug(f"'{series.title}' seasons {targets} already downloaded")
            return ReconcileResult(decision=Decision.SATISFIED, series_id=sid, seasons=targets)

        fallback = {s for s in incomplete if s in window.unknown_seasons}
        missing: dict[int, list[EpisodeState]] = {}
        wanted = [ref for ref in window.episodes if ref.season_number in incomplete]
        if wanted:
            listing = {e.ref: e for e in await self.library.get_episodes(sid)}
            for ref in wanted:
                episode = listing.get(ref)
                if episode is None:
                    logger.debug(f"'{series.title}' {ref} not listed by the library")
                    fallback.add(ref.season_number)
                elif not episode.has_file:
                    missing.setdefault(ref.season_number, []).append(episode)

        to_act = sorted(fallback | set(missing))
        if not to_act:
            logger.debug(f"'{series.title}' window {[str(r) for r in window.episodes]} already downloaded")
            return ReconcileResult(decision=Decision.SATISFIED, series_id=sid, seasons=targets)

        if self.request_seasons:
            for season in to_act:
                await self.library.request_season(sid, season)
                await self.dedup.record(sid, season)
            return ReconcileResult(decision=Decision.REQUESTED_SEASON, series_id=sid, seasons=to_act)

        by_episode = {s: eps for s, eps in missing.items() if s not in fallback}
        if by_episode:
            await self.library.request_episodes(sid, [e for s in sorted(by_episode) for e in by_episode[s]])
            for season in by_episode:
                await self.dedup.record(sid, season)
        for season in sorted(fallback):
            await self.library.request_season(sid, season)
            await self.dedup.record(sid, season)

        decision = Decision.REQUESTED_EPISODES if by_episode else Decision.REQUESTED_SEASON
        return ReconcileResult(decision=decision, series_id=sid, seasons=to_act)
