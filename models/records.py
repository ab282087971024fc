"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from enum import Enum
from typing import List, Optional, Union


class SeriesKind(str, Enum):
    """Independent categories of time series, each cached on its own."""

    temperature = "temperature"
    precipitation = "precipitation"


@dataclass(frozen=True, slots=True)
class Sample:
    """A single observation: timestamp ``t`` and numeric value ``v``."""

    t: datetime
    v: float


Series = List[Sample]

DateLike = Union[date, datetime]


def ensure_utc(value: DateLike) -> datetime:
    """Normalise a date or datetime to an aware UTC datetime.

    Plain dates map to UTC midnight and naive datetimes are assumed to be UTC.
    """
    if not isinstance(value, datetime):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass(frozen=True)
class DateRange:
    """Half-open interval ``[from_date, to_date)``; either bound may be absent."""

    from_date: Optional[datetime] = None
    to_date: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.from_date is not None:
            object.__setattr__(self, "from_date", ensure_utc(self.from_date))
        if self.to_date is not None:
            object.__setattr__(self, "to_date", ensure_utc(self.to_date))

    @classmethod
    def full(cls) -> "DateRange":
        return cls()

    @property
    def is_full(self) -> bool:
        return self.from_date is None and self.to_date is None

    def contains(self, moment: datetime) -> bool:
        if self.from_date is not None and moment < self.from_date:
            return False
        if self.to_date is not None and moment >= self.to_date:
            return False
        return True
