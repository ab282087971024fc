"""Half-open date interval filtering shared by every cache tier."""

from __future__ import annotations

from typing import Iterable, Optional

from models.records import DateRange, Sample, Series


def filter_range(series: Iterable[Sample], date_range: Optional[DateRange] = None) -> Series:
    """Return the samples with ``from_date <= t < to_date``.

    An absent or unbounded range yields a copy of the whole series so callers
    can never mutate a cached list in place.
    """
    if date_range is None or date_range.is_full:
        return list(series)
    return [sample for sample in series if date_range.contains(sample.t)]
