"""Background reductions for one render surface, last request wins."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from threading import RLock
from typing import Callable, Optional, Sequence

from models.records import Sample
from services.downsampler import DownsampleEngine, ReductionResult
from settings import get_settings

logger = logging.getLogger(__name__)

ResultCallback = Callable[[int, ReductionResult], None]


class ReductionScheduler:
    """Runs reductions off the caller's thread for a single render surface.

    Every ``submit`` starts a new generation. A reduction that finishes after a
    newer one was submitted is dropped: it never becomes ``latest`` and never
    reaches ``on_result``.
    """

    def __init__(
        self,
        engine: DownsampleEngine,
        workers: int = 1,
        on_result: Optional[ResultCallback] = None,
    ) -> None:
        self.engine = engine
        self.executor = ThreadPoolExecutor(max_workers=workers)
        self._on_result = on_result
        self._lock = RLock()
        self._generation = 0
        self._current: Optional[Future[ReductionResult]] = None
        self._latest: Optional[ReductionResult] = None
        self._latest_generation = 0

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    @property
    def latest(self) -> Optional[ReductionResult]:
        with self._lock:
            return self._latest

    @property
    def latest_generation(self) -> int:
        with self._lock:
            return self._latest_generation

    def submit(
        self,
        series: Sequence[Sample],
        pixel_width: int,
        known_min: Optional[float] = None,
        known_max: Optional[float] = None,
    ) -> Future[ReductionResult]:
        snapshot = list(series)
        with self._lock:
            self._generation += 1
            generation = self._generation
            if self._current is not None:
                # Only succeeds for a reduction that has not started yet.
                self._current.cancel()
            future = self.executor.submit(
                self.engine.reduce, snapshot, pixel_width, known_min, known_max
            )
            self._current = future
        logger.debug(
            "Submitted reduction",
            extra={"generation": generation, "pixel_width": pixel_width, "sample_count": len(snapshot)},
        )
        future.add_done_callback(lambda done, g=generation: self._apply(g, done))
        return future

    def shutdown(self, wait: bool = False) -> None:
        self.executor.shutdown(wait=wait, cancel_futures=True)

    def _apply(self, generation: int, future: Future[ReductionResult]) -> None:
        if future.cancelled():
            logger.debug("Reduction cancelled", extra={"generation": generation})
            return
        exc = future.exception()
        if exc is not None:
            logger.error(
                "Reduction failed",
                extra={"generation": generation, "reason": str(exc)},
                exc_info=exc,
            )
            return
        result = future.result()
        with self._lock:
            if generation != self._generation:
                logger.debug("Discarding superseded reduction", extra={"generation": generation})
                return
            self._latest = result
            self._latest_generation = generation
            if self._on_result is not None:
                self._on_result(generation, result)


def build_scheduler(on_result: Optional[ResultCallback] = None) -> ReductionScheduler:
    """Create a scheduler for one render surface using the configured worker count."""
    return ReductionScheduler(
        DownsampleEngine(),
        workers=get_settings().reduction_workers,
        on_result=on_result,
    )
