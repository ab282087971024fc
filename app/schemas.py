"""Pydantic schemas for the remote feed and the HTTP API layer."""

from __future__ import annotations

from datetime import date
from typing import List, Optional

from pydantic import BaseModel, Field

from models.records import Sample, SeriesKind, ensure_utc


class SampleRecord(BaseModel):
    """One ``{"t": "YYYY-MM-DD", "v": number}`` record as exchanged over HTTP."""

    t: date = Field(..., description="Observation day.")
    v: float = Field(..., strict=True, description="Observed value.")

    def to_sample(self) -> Sample:
        return Sample(t=ensure_utc(self.t), v=self.v)

    @classmethod
    def from_sample(cls, sample: Sample) -> "SampleRecord":
        return cls(t=ensure_utc(sample.t).date(), v=sample.v)


class SeriesResponse(BaseModel):
    """Samples answering a date-range query."""

    kind: SeriesKind
    from_cache: bool = Field(..., description="True when no remote fetch was needed.")
    samples: List[SampleRecord] = Field(default_factory=list)


class BucketRecord(BaseModel):
    """One downsampled pixel column."""

    pixel_x: int = Field(..., ge=0)
    mean_value: float
    source_days: List[date] = Field(default_factory=list)


class SummaryResponse(BaseModel):
    """Pixel-bucket reduction of a series."""

    kind: SeriesKind
    from_cache: bool
    pixel_width: int = Field(..., gt=0)
    buckets: List[BucketRecord] = Field(default_factory=list)
    min_value: Optional[float] = None
    max_value: Optional[float] = None
    observed_min: Optional[float] = Field(
        default=None, description="Minimum of the emitted bucket means."
    )
    observed_max: Optional[float] = Field(
        default=None, description="Maximum of the emitted bucket means."
    )
