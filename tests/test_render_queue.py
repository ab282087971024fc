from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone
from typing import List, Tuple

import pytest

from models.records import Sample
from services.downsampler import DownsampleEngine, ReductionResult
from services.render_queue import ReductionScheduler

START = datetime(2006, 1, 1, tzinfo=timezone.utc)


def _series(length: int, value: float = 1.0) -> list[Sample]:
    return [Sample(t=START + timedelta(days=index), v=value) for index in range(length)]


class GatedEngine(DownsampleEngine):
    """Blocks the first reduction until the test releases it."""

    def __init__(self) -> None:
        self.gate = threading.Event()
        self.started = threading.Event()
        self._first = True
        self._lock = threading.Lock()

    def reduce(self, series, pixel_width, known_min=None, known_max=None):
        with self._lock:
            first, self._first = self._first, False
        if first:
            self.started.set()
            assert self.gate.wait(timeout=5)
        return super().reduce(series, pixel_width, known_min, known_max)


def test_result_is_applied_and_reported() -> None:
    delivered: List[Tuple[int, ReductionResult]] = []
    scheduler = ReductionScheduler(DownsampleEngine(), on_result=lambda g, r: delivered.append((g, r)))
    try:
        future = scheduler.submit(_series(10), 5)
        result = future.result(timeout=5)
    finally:
        scheduler.shutdown(wait=True)

    assert len(result.buckets) == 5
    assert scheduler.latest is result
    assert scheduler.latest_generation == scheduler.generation == 1
    assert delivered == [(1, result)]


def test_late_reduction_is_discarded() -> None:
    engine = GatedEngine()
    delivered: List[int] = []
    scheduler = ReductionScheduler(engine, workers=2, on_result=lambda g, r: delivered.append(g))
    try:
        stale = scheduler.submit(_series(10, value=1.0), 5)
        assert engine.started.wait(timeout=5)
        fresh = scheduler.submit(_series(10, value=2.0), 5)
        fresh_result = fresh.result(timeout=5)

        engine.gate.set()
        stale_result = stale.result(timeout=5)
    finally:
        scheduler.shutdown(wait=True)

    assert stale_result.buckets[0].mean_value == 1.0
    assert scheduler.latest is fresh_result
    assert scheduler.latest_generation == 2
    assert delivered == [2]


def test_queued_reduction_is_cancelled_by_newer_submit() -> None:
    engine = GatedEngine()
    scheduler = ReductionScheduler(engine, workers=1)
    try:
        running = scheduler.submit(_series(4), 2)
        assert engine.started.wait(timeout=5)
        queued = scheduler.submit(_series(4), 2)
        newest = scheduler.submit(_series(6, value=3.0), 3)

        assert queued.cancelled()
        engine.gate.set()
        running.result(timeout=5)
        newest_result = newest.result(timeout=5)
    finally:
        scheduler.shutdown(wait=True)

    assert scheduler.generation == 3
    assert scheduler.latest is newest_result
    assert [bucket.mean_value for bucket in newest_result.buckets] == [3.0, 3.0, 3.0]


def test_failed_reduction_is_logged_and_not_applied(caplog) -> None:
    class BrokenEngine(DownsampleEngine):
        def reduce(self, series, pixel_width, known_min=None, known_max=None):
            raise RuntimeError("boom")

    scheduler = ReductionScheduler(BrokenEngine())
    try:
        future = scheduler.submit(_series(3), 3)
        with pytest.raises(RuntimeError, match="boom"):
            future.result(timeout=5)
    finally:
        scheduler.shutdown(wait=True)

    assert scheduler.latest is None
    assert any(record.getMessage() == "Reduction failed" for record in caplog.records)
