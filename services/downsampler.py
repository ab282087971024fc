"""Pixel-bucket reduction of long series for fixed-width rendering."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional, Sequence, Tuple

from models.records import Sample


@dataclass(frozen=True)
class DownsampleBucket:
    """Mean of the source samples mapped to one output column."""

    pixel_x: int
    mean_value: float
    source_timestamps: Tuple[datetime, ...]


@dataclass
class ReductionResult:
    buckets: List[DownsampleBucket] = field(default_factory=list)
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    observed_min: Optional[float] = None
    observed_max: Optional[float] = None


class DownsampleEngine:
    """Pure reduction component that can be unit tested in isolation."""

    def reduce(
        self,
        series: Sequence[Sample],
        pixel_width: int,
        known_min: Optional[float] = None,
        known_max: Optional[float] = None,
    ) -> ReductionResult:
        """Produce at most one bucket per pixel column.

        ``min_value``/``max_value`` are the raw sample extremes unless the caller
        supplies them. When neither is supplied, ``observed_min``/``observed_max``
        are the extremes of the emitted bucket means, which are usually narrower
        than the raw extremes; otherwise they repeat the supplied values.

        An empty series or a non-positive width yields no buckets and no
        statistics.
        """
        if not series or pixel_width <= 0:
            return ReductionResult()

        caller_supplied = known_min is not None or known_max is not None
        min_value, max_value = known_min, known_max
        if min_value is None or max_value is None:
            min_value, max_value = self._extremes(sample.v for sample in series)

        count = len(series)
        samples_per_pixel = count / pixel_width
        buckets: List[DownsampleBucket] = []
        previous: Optional[Tuple[int, int]] = None

        for x in range(pixel_width):
            start = math.floor(x * samples_per_pixel)
            length = min(samples_per_pixel, count - start)
            end = math.floor(start + length - 1)
            if start >= end:
                end = start + 1

            # Fewer samples than columns: repeated windows are skipped, not upsampled.
            if (start, end) == previous:
                continue
            previous = (start, end)

            window = series[start:end]
            buckets.append(
                DownsampleBucket(
                    pixel_x=x,
                    mean_value=sum(sample.v for sample in window) / len(window),
                    source_timestamps=tuple(sample.t for sample in window),
                )
            )

        if caller_supplied:
            observed_min, observed_max = known_min, known_max
        else:
            observed_min, observed_max = self._extremes(
                bucket.mean_value for bucket in buckets
            )

        return ReductionResult(
            buckets=buckets,
            min_value=min_value,
            max_value=max_value,
            observed_min=observed_min,
            observed_max=observed_max,
        )

    @staticmethod
    def _extremes(values) -> Tuple[Optional[float], Optional[float]]:
        low: Optional[float] = None
        high: Optional[float] = None
        for value in values:
            if low is None or value < low:
                low = value
            if high is None or value > high:
                high = value
        return low, high
