from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, Field, ValidationError

from models.date_keys import from_day_key, to_day_key, to_month_key
from models.records import DateRange, Sample, Series, SeriesKind
from services.range_filter import filter_range
from settings import get_settings

logger = logging.getLogger(__name__)


class StoredSample(BaseModel):
    t: str = Field(..., description="Day key, YYYY-MM-DD.")
    v: float


class PersistedChunk(BaseModel):
    """All samples of one year-month partition, keyed by its first sample."""

    key: datetime
    partition: str
    samples: List[StoredSample] = Field(default_factory=list)

    def to_series(self) -> Series:
        return [Sample(t=from_day_key(item.t), v=item.v) for item in self.samples]


def partition_series(series: Iterable[Sample]) -> List[PersistedChunk]:
    """Split a sorted series into contiguous month chunks."""
    chunks: List[PersistedChunk] = []
    current: Optional[str] = None
    for sample in series:
        partition = to_month_key(sample.t)
        day_key = to_day_key(sample.t)
        if partition != current:
            chunks.append(
                PersistedChunk(key=from_day_key(day_key), partition=partition)
            )
            current = partition
        chunks[-1].samples.append(StoredSample(t=day_key, v=sample.v))
    return chunks


def _merge_chunks(existing: PersistedChunk, incoming: PersistedChunk) -> PersistedChunk:
    # Same day key overwrites, so re-inserting a series never duplicates samples.
    by_day = {item.t: item.v for item in existing.samples}
    by_day.update((item.t, item.v) for item in incoming.samples)
    ordered = sorted(by_day.items(), key=lambda item: from_day_key(item[0]))
    return PersistedChunk(
        key=from_day_key(ordered[0][0]),
        partition=existing.partition,
        samples=[StoredSample(t=day, v=value) for day, value in ordered],
    )


class ChunkStore:
    """Durable month-partitioned store, one partition map per series kind.

    The environment may lack persistent storage (``enabled=False``); the store
    then answers every query with an empty series and ignores inserts. Without
    a ``root_path`` it keeps chunks in memory only.
    """

    def __init__(
        self,
        name: str = "series",
        root_path: Optional[Path] = None,
        enabled: bool = True,
    ) -> None:
        self.name = name
        self.root_path = root_path
        self.enabled = enabled
        self._chunks: Dict[SeriesKind, Dict[str, PersistedChunk]] = {
            kind: {} for kind in SeriesKind
        }
        self._lock = Lock()
        if enabled and root_path:
            root_path.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def is_available(self) -> bool:
        return self.enabled

    async def bulk_insert(self, kind: SeriesKind, series: Series) -> int:
        """Persist ``series`` for ``kind``; returns the number of chunks written."""
        if not self.enabled:
            return 0
        return await asyncio.to_thread(self.insert_series, kind, list(series))

    async def query_range(self, kind: SeriesKind, date_range: Optional[DateRange] = None) -> Series:
        if not self.enabled:
            return []
        return await asyncio.to_thread(self.read_range, kind, date_range)

    def insert_series(self, kind: SeriesKind, series: Series) -> int:
        chunks = partition_series(series)
        if not chunks:
            return 0
        with self._lock:
            partitions = self._chunks[kind]
            for chunk in chunks:
                existing = partitions.get(chunk.partition)
                partitions[chunk.partition] = (
                    chunk if existing is None else _merge_chunks(existing, chunk)
                )
            self._persist(kind)
        logger.info(
            "Stored series chunks",
            extra={
                "kind": kind.value,
                "chunk_count": len(chunks),
                "sample_count": len(series),
            },
        )
        return len(chunks)

    def read_range(self, kind: SeriesKind, date_range: Optional[DateRange] = None) -> Series:
        upper = date_range.to_date if date_range is not None else None
        series: Series = []
        with self._lock:
            for chunk in sorted(self._chunks[kind].values(), key=lambda item: item.key):
                if upper is not None and chunk.key >= upper:
                    break
                series.extend(chunk.to_series())
        return filter_range(series, date_range)

    def chunks(self, kind: SeriesKind) -> List[PersistedChunk]:
        """Return deep copies of the stored chunks of ``kind`` in key order."""
        with self._lock:
            ordered = sorted(self._chunks[kind].values(), key=lambda item: item.key)
            return [chunk.model_copy(deep=True) for chunk in ordered]

    def _path_for(self, kind: SeriesKind) -> Optional[Path]:
        if not self.root_path:
            return None
        return self.root_path / f"{self.name}-{kind.value}.json"

    def _persist(self, kind: SeriesKind) -> None:
        path = self._path_for(kind)
        if path is None:
            return
        ordered = sorted(self._chunks[kind].values(), key=lambda item: item.key)
        payload = [chunk.model_dump(mode="json") for chunk in ordered]
        path.write_text(json.dumps(payload, indent=2))

    def _load_from_disk(self) -> None:
        for kind in SeriesKind:
            path = self._path_for(kind)
            if path is None or not path.exists():
                continue
            try:
                raw = path.read_text() or "[]"
                chunks = [PersistedChunk.model_validate(item) for item in json.loads(raw)]
            except (OSError, json.JSONDecodeError, ValidationError, TypeError) as exc:
                logger.warning(
                    "Ignoring unreadable chunk file",
                    extra={"kind": kind.value, "reason": str(exc)},
                )
                continue
            self._chunks[kind] = {chunk.partition: chunk for chunk in chunks}


@lru_cache
def build_default_store(
    name: Optional[str] = None,
    root_path: Optional[str] = None,
) -> ChunkStore:
    settings = get_settings()
    store_root = settings.store_root_path if root_path is None else root_path
    path = Path(store_root) if store_root else None
    return ChunkStore(
        name=name or "series",
        root_path=path,
        enabled=settings.store_enabled,
    )
