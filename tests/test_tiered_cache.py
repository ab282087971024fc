"""Behavioural tests for the memory / persistent / remote fallback chain."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

import pytest

from datastore.chunk_store import ChunkStore
from models.records import DateRange, Sample, Series, SeriesKind
from services.tiered_cache import TieredCache
from storage.remote_source import RemoteFetchError

KIND = SeriesKind.temperature


def _day(day: int) -> datetime:
    return datetime(2006, 12, day, tzinfo=timezone.utc)


THREE = [Sample(t=_day(1), v=5.0), Sample(t=_day(2), v=7.0), Sample(t=_day(3), v=3.0)]


class FakeFetcher:
    """Stands in for the remote feed and counts every full fetch."""

    def __init__(
        self,
        series: Dict[SeriesKind, Series],
        error: Optional[Exception] = None,
        delay: float = 0.0,
    ) -> None:
        self.series = series
        self.error = error
        self.delay = delay
        self.calls: List[SeriesKind] = []
        self.closed = False

    async def fetch_full(self, kind: SeriesKind) -> Series:
        self.calls.append(kind)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return list(self.series[kind])

    async def aclose(self) -> None:
        self.closed = True


class RecordingStore(ChunkStore):
    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self.inserted: List[tuple[SeriesKind, Series]] = []

    def insert_series(self, kind: SeriesKind, series: Series) -> int:
        self.inserted.append((kind, list(series)))
        return super().insert_series(kind, series)


class FailingStore(ChunkStore):
    def insert_series(self, kind: SeriesKind, series: Series) -> int:
        raise OSError("disk full")


def _cache(store: Optional[ChunkStore] = None, **fetcher_kwargs) -> tuple[TieredCache, FakeFetcher]:
    fetcher = FakeFetcher(
        fetcher_kwargs.pop("series", {KIND: THREE, SeriesKind.precipitation: THREE[:1]}),
        **fetcher_kwargs,
    )
    return TieredCache(store=store if store is not None else RecordingStore(), fetcher=fetcher), fetcher


def test_end_to_end_cold_fetch_then_memory_hit() -> None:
    store = RecordingStore()
    cache, fetcher = _cache(store)

    async def scenario():
        first = await cache.get(KIND, DateRange())
        assert first.pending_persist is not None
        await first.pending_persist
        second = await cache.get(KIND, DateRange())
        return first, second

    first, second = asyncio.run(scenario())

    assert first.from_cache is False
    assert first.data == THREE
    assert len(store.inserted) == 1
    assert store.inserted[0] == (KIND, THREE)
    chunks = store.chunks(KIND)
    assert [chunk.partition for chunk in chunks] == ["2006-12"]
    assert len(chunks[0].samples) == 3

    assert second.from_cache is True
    assert second.data == THREE
    assert second.pending_persist is None
    assert fetcher.calls == [KIND]


def test_empty_tiers_fetch_remote_exactly_once() -> None:
    cache, fetcher = _cache()

    response = asyncio.run(cache.get(KIND))

    assert fetcher.calls == [KIND]
    assert response.from_cache is False


def test_populated_store_answers_without_remote_fetch() -> None:
    store = RecordingStore()
    store.insert_series(KIND, THREE)
    cache, fetcher = _cache(store)

    response = asyncio.run(cache.get(KIND, DateRange(from_date=_day(2))))

    assert fetcher.calls == []
    assert response.from_cache is True
    assert response.pending_persist is None
    assert response.data == THREE[1:]


def test_store_hit_never_seeds_memory() -> None:
    store = RecordingStore()
    store.insert_series(KIND, THREE[:2])
    cache, fetcher = _cache(store)

    response = asyncio.run(cache.get(KIND, DateRange()))

    # The store only held part of the series; it must not pose as the full entry.
    assert response.data == THREE[:2]
    assert cache.is_cached(KIND) is False
    assert fetcher.calls == []


def test_partial_range_remote_fetch_leaves_memory_unset() -> None:
    store = RecordingStore()
    cache, fetcher = _cache(store)
    window = DateRange(from_date=_day(2), to_date=_day(3))

    async def scenario():
        first = await cache.get(KIND, window)
        await cache.wait_for_pending()
        second = await cache.get(KIND, window)
        return first, second

    first, second = asyncio.run(scenario())

    assert first.from_cache is False
    assert first.data == [THREE[1]]
    assert cache.is_cached(KIND) is False
    # The complete series was persisted even though only a slice was requested.
    assert store.inserted == [(KIND, THREE)]
    assert second.from_cache is True
    assert second.data == [THREE[1]]
    assert fetcher.calls == [KIND]


def test_full_range_remote_fetch_seeds_memory() -> None:
    cache, _ = _cache()

    asyncio.run(cache.get(KIND))

    assert cache.is_cached(KIND) is True
    assert cache.is_cached(SeriesKind.precipitation) is False


def test_memory_hit_applies_range_and_returns_copies() -> None:
    cache, fetcher = _cache()

    async def scenario():
        full = await cache.get(KIND)
        full.data.clear()
        ranged = await cache.get(KIND, DateRange(to_date=_day(3)))
        again = await cache.get(KIND)
        return ranged, again

    ranged, again = asyncio.run(scenario())

    assert ranged.from_cache is True
    assert ranged.data == THREE[:2]
    assert again.data == THREE
    assert fetcher.calls == [KIND]


def test_unavailable_store_behaves_as_empty_tier() -> None:
    store = RecordingStore(enabled=False)
    cache, fetcher = _cache(store)

    async def scenario():
        first = await cache.get(KIND, DateRange(from_date=_day(2)))
        second = await cache.get(KIND, DateRange(from_date=_day(2)))
        return first, second

    first, second = asyncio.run(scenario())

    assert first.pending_persist is None
    assert store.inserted == []
    assert first.data == second.data == THREE[1:]
    assert second.from_cache is False
    assert fetcher.calls == [KIND, KIND]


def test_write_back_failure_does_not_fail_the_read(caplog) -> None:
    cache, _ = _cache(FailingStore())

    async def scenario():
        response = await cache.get(KIND)
        with pytest.raises(OSError, match="disk full"):
            await response.pending_persist
        await cache.wait_for_pending()
        await asyncio.sleep(0)
        return response

    with caplog.at_level(logging.ERROR):
        response = asyncio.run(scenario())

    assert response.data == THREE
    assert response.from_cache is False
    assert cache.is_cached(KIND) is True
    records = [record for record in caplog.records if record.name == "services.tiered_cache"]
    assert any("Write-back" in record.getMessage() for record in records)
    assert any(getattr(record, "kind", None) == KIND.value for record in records)


def test_remote_failure_propagates() -> None:
    error = RemoteFetchError(KIND, "http://feed.test/temperature.json", "status 500")
    cache, fetcher = _cache(error=error)

    with pytest.raises(RemoteFetchError, match="status 500"):
        asyncio.run(cache.get(KIND))

    assert cache.is_cached(KIND) is False
    assert fetcher.calls == [KIND]


def test_concurrent_misses_share_one_remote_fetch() -> None:
    store = RecordingStore()
    cache, fetcher = _cache(store, delay=0.1)

    async def scenario():
        return await asyncio.gather(
            cache.get(KIND),
            cache.get(KIND, DateRange(from_date=_day(3))),
        )

    async def run():
        results = await scenario()
        await cache.wait_for_pending()
        return results

    full, partial = asyncio.run(run())

    assert fetcher.calls == [KIND]
    assert full.data == THREE
    assert partial.data == [THREE[2]]
    assert full.from_cache is partial.from_cache is False
    assert full.pending_persist is partial.pending_persist
    assert len(store.inserted) == 1
    assert cache.is_cached(KIND) is True


def test_kinds_fetch_independently() -> None:
    cache, fetcher = _cache(delay=0.01)

    async def scenario():
        return await asyncio.gather(
            cache.get_temperature(),
            cache.get_precipitation(),
        )

    temperature, precipitation = asyncio.run(scenario())

    assert sorted(kind.value for kind in fetcher.calls) == ["precipitation", "temperature"]
    assert temperature.data == THREE
    assert precipitation.data == THREE[:1]


def test_aclose_drains_write_backs_and_closes_fetcher() -> None:
    store = RecordingStore()
    cache, fetcher = _cache(store)

    async def scenario() -> None:
        await cache.get(KIND)
        await cache.aclose()

    asyncio.run(scenario())

    assert fetcher.closed is True
    assert store.inserted == [(KIND, THREE)]
