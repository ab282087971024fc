"""String keys used by the persistent layout.

Day keys (``YYYY-MM-DD``) serialise individual samples inside a chunk and
month keys (``YYYY-MM``) decide chunk boundaries. Queries never compare these
strings; they compare datetimes.
"""

from __future__ import annotations

from datetime import datetime, timezone

from models.records import ensure_utc


def to_day_key(moment: datetime) -> str:
    moment = ensure_utc(moment)
    return f"{to_month_key(moment)}-{moment.day:02d}"


def to_month_key(moment: datetime) -> str:
    moment = ensure_utc(moment)
    return f"{moment.year:04d}-{moment.month:02d}"


def from_day_key(key: str) -> datetime:
    """Parse a ``YYYY-MM-DD`` key into a UTC midnight datetime."""
    candidate = key.strip()
    try:
        parsed = datetime.strptime(candidate, "%Y-%m-%d")
    except ValueError as exc:
        raise ValueError(f"Invalid day key {key!r}; expected YYYY-MM-DD.") from exc
    return parsed.replace(tzinfo=timezone.utc)
