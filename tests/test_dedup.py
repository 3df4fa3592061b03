"""Tests for the time-windowed dedup cache."""

import asyncio

from watchahead.models.probe import DedupKind
from watchahead.services.dedup_service import RETENTION_SECONDS, DedupCache


class FakeClock:
    def __init__(self, now=1_000_000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def test_retention_is_seven_days():
    assert RETENTION_SECONDS == 7 * 24 * 3600


def test_unknown_pair_is_not_handled():
    cache = DedupCache(clock=FakeClock())
    assert asyncio.run(cache.already_handled(1, 1)) is False


def test_recorded_pair_is_handled_until_expiry():
    clock = FakeClock()
    cache = DedupCache(clock=clock)

    async def scenario():
        await cache.record(5, 2)
        assert await cache.already_handled(5, 2)
        assert not await cache.already_handled(5, 3)
        assert not await cache.already_handled(6, 2)

        clock.advance(RETENTION_SECONDS - 1)
        assert await cache.already_handled(5, 2)

        clock.advance(1)
        assert not await cache.already_handled(5, 2)

    asyncio.run(scenario())


def test_record_refreshes_timestamp():
    clock = FakeClock()
    cache = DedupCache(clock=clock)

    async def scenario():
        await cache.record(5, 2)
        clock.advance(RETENTION_SECONDS - 10)
        await cache.record(5, 2)
        clock.advance(20)
        assert await cache.already_handled(5, 2)

    asyncio.run(scenario())


def test_prune_and_entries():
    clock = FakeClock()
    cache = DedupCache(retention=100, clock=clock)

    async def scenario():
        await cache.record(1, 1)
        clock.advance(60)
        await cache.record(2, 3)
        clock.advance(50)
        assert await cache.prune() == 1
        entries = await cache.entries()
        assert [(e.series_id, e.season_number) for e in entries] == [(2, 3)]
        assert entries[0].recorded_at == 1_000_060.0

    asyncio.run(scenario())


def test_concurrent_records_do_not_interfere():
    cache = DedupCache(clock=FakeClock())

    async def scenario():
        await asyncio.gather(*(cache.record(s, n) for s in range(10) for n in range(1, 4)))
        return await cache.entries()

    assert len(asyncio.run(scenario())) == 30


def test_kinds_are_tracked_separately():
    cache = DedupCache(clock=FakeClock())

    async def scenario():
        await cache.record(5, 2)
        assert not await cache.already_handled(5, 2, DedupKind.FUTURE_SEASONS)
        await cache.record(5, 2, DedupKind.FUTURE_SEASONS)
        assert await cache.already_handled(5, 2, DedupKind.FUTURE_SEASONS)
        return await cache.entries()

    entries = asyncio.run(scenario())
    assert [(e.season_number, e.kind) for e in entries] == [(2, DedupKind.FUTURE_SEASONS), (2, DedupKind.SEASON)]
