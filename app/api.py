"""HTTP route definitions for the service."""

from __future__ import annotations

from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.concurrency import run_in_threadpool

from app.schemas import BucketRecord, SampleRecord, SeriesResponse, SummaryResponse
from models.records import DateRange, SeriesKind
from services.downsampler import DownsampleEngine
from services.tiered_cache import CacheResponse, TieredCache, build_default_cache
from storage.remote_source import RemoteFetchError

router = APIRouter()

_engine = DownsampleEngine()


def get_cache() -> TieredCache:
    return build_default_cache()


def get_engine() -> DownsampleEngine:
    return _engine


def _date_range(from_date: Optional[date], to_date: Optional[date]) -> DateRange:
    """An inverted range is not an error; it simply matches no samples."""
    return DateRange(from_date=from_date, to_date=to_date)


async def _load(cache: TieredCache, kind: SeriesKind, date_range: DateRange) -> CacheResponse:
    try:
        return await cache.get(kind, date_range)
    except RemoteFetchError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=str(exc),
        ) from exc


@router.get(
    "/series/{kind}",
    response_model=SeriesResponse,
    summary="Fetch the samples of a series within an optional date range.",
)
async def get_series(
    kind: SeriesKind,
    from_date: Optional[date] = Query(None, alias="from", description="Inclusive lower bound."),
    to_date: Optional[date] = Query(None, alias="to", description="Exclusive upper bound."),
    cache: TieredCache = Depends(get_cache),
) -> SeriesResponse:
    response = await _load(cache, kind, _date_range(from_date, to_date))
    return SeriesResponse(
        kind=kind,
        from_cache=response.from_cache,
        samples=[SampleRecord.from_sample(sample) for sample in response.data],
    )


@router.get(
    "/series/{kind}/summary",
    response_model=SummaryResponse,
    summary="Reduce a series to one averaged point per pixel column.",
)
async def get_summary(
    kind: SeriesKind,
    width: int = Query(800, gt=0, le=10_000, description="Target pixel width."),
    from_date: Optional[date] = Query(None, alias="from"),
    to_date: Optional[date] = Query(None, alias="to"),
    cache: TieredCache = Depends(get_cache),
    engine: DownsampleEngine = Depends(get_engine),
) -> SummaryResponse:
    response = await _load(cache, kind, _date_range(from_date, to_date))
    if not response.data:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No {kind.value} samples in the requested range.",
        )
    reduction = await run_in_threadpool(engine.reduce, response.data, width)
    return SummaryResponse(
        kind=kind,
        from_cache=response.from_cache,
        pixel_width=width,
        buckets=[
            BucketRecord(
                pixel_x=bucket.pixel_x,
                mean_value=bucket.mean_value,
                source_days=[moment.date() for moment in bucket.source_timestamps],
            )
            for bucket in reduction.buckets
        ],
        min_value=reduction.min_value,
        max_value=reduction.max_value,
        observed_min=reduction.observed_min,
        observed_max=reduction.observed_max,
    )


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
