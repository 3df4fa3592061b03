"""Startup connection probing with bounded, exponentially spaced retries."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from watchahead.errors import BackendAuthError, StartupProbeFailed, WatchaheadError
from watchahead.models.probe import ConnectionProbeResult

logger = logging.getLogger(__name__)

Probe = Callable[[], Awaitable[None]]
Sleep = Callable[[float], Awaitable[None]]


async def probe_backend(
    backend: str,
    probe: Probe,
    retries: int = 0,
    base_delay: float = 1.0,
    sleep: Sleep = asyncio.sleep,
) -> ConnectionProbeResult:
    """Run *probe* up to ``retries + 1`` times, doubling the delay each time."""
    result = ConnectionProbeResult(backend=backend)
    for attempt in range(retries + 1):
        if attempt:
            delay = base_delay * 2 ** attempt
            logger.info(f"Retrying {backend} in {delay:g} seconds ({attempt}/{retries})")
            await sleep(delay)
        result.attempt_count = attempt + 1
        try:
            await probe()
        except WatchaheadError as e:
            kind = "authentication failed" if isinstance(e, BackendAuthError) else "unreachable"
            logger.error(f"Probing {backend} failed ({kind}): {e}")
            result.error = str(e)
            continue
        result.succeeded = True
        result.error = None
        logger.info(f"{backend} reachable")
        return result
    return result


async def probe_all(
    probes: list[tuple[str, Probe]],
    retries: int = 0,
    base_delay: float = 1.0,
    sleep: Sleep = asyncio.sleep,
) -> list[ConnectionProbeResult]:
    """Probe every backend in order; raises StartupProbeFailed on the first one that stays down."""
    results = []
    for backend, probe in probes:
        result = await probe_backend(backend, probe, retries, base_delay, sleep)
        results.append(result)
        if not result.succeeded:
            raise StartupProbeFailed(result)
    return results
