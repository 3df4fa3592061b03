"""Polling scheduler — fetch sessions, reconcile them, wait, repeat."""
from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime
from typing import TYPE_CHECKING, Callable, Optional

from watchahead.errors import WatchaheadError
from watchahead.models.probe import CycleReport, Decision

if TYPE_CHECKING:
    from watchahead.services.decision_service import DecisionService
    from watchahead.services.filter_service import SessionFilter
    from watchahead.services.media_server import MediaServerClient

logger = logging.getLogger(__name__)


class Scheduler:
    """Runs one reconciliation cycle per interval until stopped.

    Cycles never overlap: the next one starts ``interval`` seconds after the
    previous one started, or right after it finished when it overran.
    ``stop()`` ends the wait between cycles immediately but lets a running
    cycle complete.
    """

    def __init__(
        self,
        media_server: "MediaServerClient",
        engine: "DecisionService",
        interval: float,
        session_filter: Optional["SessionFilter"] = None,
        max_concurrency: int = 4,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.media_server = media_server
        self.engine = engine
        self.interval = interval
        self.session_filter = session_filter
        self.max_concurrency = max_concurrency
        self._clock = clock
        self._stop = asyncio.Event()
        self.cycles = 0
        self.last_report: Optional[CycleReport] = None

    def stop(self) -> None:
        if not self._stop.is_set():
            logger.info("Stop requested, finishing the current cycle")
        self._stop.set()

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    async def run_cycle(self) -> CycleReport:
        report = CycleReport()
        pruned = await self.engine.dedup.prune()
        if pruned:
            logger.debug(f"Dropped {pruned} expired dedup entr{'y' if pruned == 1 else 'ies'}")
        try:
            sessions = await self.media_server.list_active_sessions(self.session_filter)
        except WatchaheadError as e:
            logger.error(f"Cannot fetch sessions from {self.media_server.backend_name}: {e}")
            report.error = str(e)
            sessions = []
        except Exception as e:
            logger.error(f"Unexpected error while fetching sessions from {self.media_server.backend_name}: {e!r}")
            report.error = repr(e)
            sessions = []

        report.sessions = len(sessions)
        if sessions:
            semaphore = asyncio.Semaphore(self.max_concurrency)

            async def _reconcile(session):
                async with semaphore:
                    return await self.engine.reconcile(session)

            results = await asyncio.gather(*(_reconcile(s) for s in sessions), return_exceptions=True)
            for session, result in zip(sessions, results):
                if isinstance(result, Exception):
                    logger.error(f"Unexpected error while processing {session.describe()}: {result!r}")
                    report.count(Decision.FAILED)
                elif isinstance(result, BaseException):
                    raise result
                else:
                    report.count(result.decision)

        report.finished_at = datetime.now()
        self.cycles += 1
        self.last_report = report
        if sessions:
            logger.info(f"Cycle {self.cycles}: {report.sessions} session(s), {report.decisions}")
        else:
            logger.debug(f"Cycle {self.cycles}: no active episode sessions")
        return report

    async def run(self) -> None:
        logger.info(f"Start watching {self.media_server.backend_name} sessions every {self.interval}s")
        while not self._stop.is_set():
            started = self._clock()
            await self.run_cycle()
            timeout = max(0.0, self.interval - (self._clock() - started))
            try:
                await asyncio.wait_for(self._stop.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                pass
        logger.info("Scheduler stopped")
