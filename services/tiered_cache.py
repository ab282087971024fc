"""Tiered series cache: memory, then the persistent store, then the remote feed."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import Callable, Dict, Optional, Sequence, Set, Tuple

from datastore.chunk_store import ChunkStore, build_default_store
from models.records import DateRange, Series, SeriesKind
from services.range_filter import filter_range
from storage.remote_source import RemoteSeriesFetcher, build_default_fetcher

logger = logging.getLogger(__name__)

WriteBack = Callable[[SeriesKind, Series], Optional["asyncio.Task[int]"]]


class TierStatus(str, Enum):
    hit = "hit"
    miss = "miss"


@dataclass
class TierResult:
    """Outcome of asking one tier for a range of a series."""

    tier: str
    status: TierStatus
    from_cache: bool = True
    data: Series = field(default_factory=list)
    full_series: Optional[Series] = None
    pending_persist: Optional["asyncio.Task[int]"] = None

    @property
    def hit(self) -> bool:
        return self.status is TierStatus.hit

    @classmethod
    def miss(cls, tier: str) -> "TierResult":
        return cls(tier=tier, status=TierStatus.miss)


@dataclass(frozen=True)
class CacheResponse:
    data: Series
    from_cache: bool
    pending_persist: Optional["asyncio.Task[int]"] = None


class MemoryTier:
    """Full, unfiltered series per kind for the lifetime of the process."""

    name = "memory"

    def __init__(self) -> None:
        self._entries: Dict[SeriesKind, Series] = {}

    def has(self, kind: SeriesKind) -> bool:
        return kind in self._entries

    def store(self, kind: SeriesKind, series: Series) -> None:
        self._entries[kind] = list(series)

    async def lookup(self, kind: SeriesKind, date_range: DateRange) -> TierResult:
        entry = self._entries.get(kind)
        if entry is None:
            return TierResult.miss(self.name)
        return TierResult(
            tier=self.name, status=TierStatus.hit, data=filter_range(entry, date_range)
        )


class PersistentTier:
    name = "persistent"

    def __init__(self, store: ChunkStore) -> None:
        self.store = store

    async def lookup(self, kind: SeriesKind, date_range: DateRange) -> TierResult:
        if not self.store.is_available():
            return TierResult.miss(self.name)
        data = await self.store.query_range(kind, date_range)
        if not data:
            return TierResult.miss(self.name)
        return TierResult(tier=self.name, status=TierStatus.hit, data=data)


class RemoteTier:
    """Always fetches the complete series; concurrent fetches of a kind are shared."""

    name = "remote"

    def __init__(self, fetcher: RemoteSeriesFetcher, write_back: WriteBack) -> None:
        self.fetcher = fetcher
        self._write_back = write_back
        self._inflight: Dict[SeriesKind, "asyncio.Task[Tuple[Series, Optional[asyncio.Task[int]]]]"] = {}

    async def lookup(self, kind: SeriesKind, date_range: DateRange) -> TierResult:
        task = self._inflight.get(kind)
        if task is None:
            task = asyncio.ensure_future(self._fetch(kind))
            self._inflight[kind] = task
            task.add_done_callback(lambda done, k=kind: self._forget(k, done))
        full, pending = await asyncio.shield(task)
        return TierResult(
            tier=self.name,
            status=TierStatus.hit,
            from_cache=False,
            data=filter_range(full, date_range),
            full_series=full,
            pending_persist=pending,
        )

    async def _fetch(self, kind: SeriesKind) -> Tuple[Series, Optional["asyncio.Task[int]"]]:
        full = await self.fetcher.fetch_full(kind)
        return full, self._write_back(kind, full)

    def _forget(self, kind: SeriesKind, task: asyncio.Task) -> None:
        if self._inflight.get(kind) is task:
            del self._inflight[kind]


class TieredCache:
    """Single entry point for series queries.

    Tiers are consulted in order until one reports a hit. Only a full-range
    remote fetch seeds the memory tier, so a partially cached series can never
    pass for a complete one. Remote fetches are written back to the store in
    the background and never delay the response.
    """

    def __init__(self, store: ChunkStore, fetcher: RemoteSeriesFetcher) -> None:
        self.store = store
        self.fetcher = fetcher
        self.memory = MemoryTier()
        self.tiers: Sequence = (
            self.memory,
            PersistentTier(store),
            RemoteTier(fetcher, self._start_write_back),
        )
        self._pending: Set["asyncio.Task[int]"] = set()

    async def get(self, kind: SeriesKind, date_range: Optional[DateRange] = None) -> CacheResponse:
        date_range = date_range or DateRange.full()
        context = {
            "kind": kind.value,
            "range_from": date_range.from_date.isoformat() if date_range.from_date else None,
            "range_to": date_range.to_date.isoformat() if date_range.to_date else None,
        }
        for tier in self.tiers:
            result = await tier.lookup(kind, date_range)
            if not result.hit:
                logger.debug("Tier miss", extra={**context, "tier": tier.name})
                continue
            if result.full_series is not None and date_range.is_full:
                self.memory.store(kind, result.full_series)
            logger.info(
                "Served series",
                extra={**context, "tier": tier.name, "sample_count": len(result.data)},
            )
            return CacheResponse(
                data=result.data,
                from_cache=result.from_cache,
                pending_persist=result.pending_persist,
            )
        raise LookupError(f"No tier could serve the {kind.value} series.")

    async def get_temperature(self, date_range: Optional[DateRange] = None) -> CacheResponse:
        return await self.get(SeriesKind.temperature, date_range)

    async def get_precipitation(self, date_range: Optional[DateRange] = None) -> CacheResponse:
        return await self.get(SeriesKind.precipitation, date_range)

    def is_cached(self, kind: SeriesKind) -> bool:
        return self.memory.has(kind)

    async def wait_for_pending(self) -> None:
        """Wait for outstanding write-backs; their failures are already logged."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def aclose(self) -> None:
        await self.wait_for_pending()
        await self.fetcher.aclose()

    def _start_write_back(self, kind: SeriesKind, series: Series) -> Optional["asyncio.Task[int]"]:
        if not self.store.is_available() or not series:
            return None
        task = asyncio.create_task(self.store.bulk_insert(kind, series))
        self._pending.add(task)
        task.add_done_callback(lambda done, k=kind: self._finish_write_back(k, done))
        return task

    def _finish_write_back(self, kind: SeriesKind, task: "asyncio.Task[int]") -> None:
        self._pending.discard(task)
        if task.cancelled():
            logger.warning("Write-back cancelled", extra={"kind": kind.value})
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Write-back to the persistent store failed",
                extra={"kind": kind.value, "reason": str(exc)},
                exc_info=exc,
            )


@lru_cache
def build_default_cache() -> TieredCache:
    """Factory that wires the cache with the configured store and remote feed."""
    return TieredCache(store=build_default_store(), fetcher=build_default_fetcher())
