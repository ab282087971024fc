"""HTTP access to the remote series feed, the source of truth."""

from __future__ import annotations

import logging
from typing import Any, List, Mapping, Optional

import httpx
from pydantic import TypeAdapter, ValidationError

from app.schemas import SampleRecord
from models.records import DateRange, SeriesKind, Series
from services.range_filter import filter_range
from settings import get_settings

logger = logging.getLogger(__name__)

_RECORDS = TypeAdapter(List[SampleRecord])


class RemoteFetchError(RuntimeError):
    """Raised when a series cannot be retrieved or decoded."""

    def __init__(self, kind: SeriesKind, url: str, reason: str) -> None:
        super().__init__(f"Failed to fetch {kind.value} series from {url}: {reason}")
        self.kind = kind
        self.url = url
        self.reason = reason


def decode_series(payload: Any) -> Series:
    """Decode a JSON array of sample records.

    A single malformed record fails the whole payload.
    """
    records = _RECORDS.validate_python(payload)
    return [record.to_sample() for record in records]


class RemoteSeriesFetcher:
    """Retrieves complete named series from the remote endpoints."""

    def __init__(
        self,
        base_url: str,
        endpoints: Mapping[SeriesKind, str],
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        missing = [kind.value for kind in SeriesKind if kind not in endpoints]
        if missing:
            raise ValueError(f"No endpoint configured for: {', '.join(missing)}")
        self.endpoints = dict(endpoints)
        self._client = httpx.AsyncClient(
            base_url=base_url, timeout=timeout, transport=transport
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch_full(self, kind: SeriesKind) -> Series:
        endpoint = self.endpoints[kind]
        url = str(self._client.base_url.join(endpoint))
        try:
            response = await self._client.get(endpoint)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as exc:
            raise RemoteFetchError(
                kind, url, f"status {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise RemoteFetchError(kind, url, str(exc) or type(exc).__name__) from exc
        except ValueError as exc:
            raise RemoteFetchError(kind, url, "response is not valid JSON") from exc

        try:
            series = decode_series(payload)
        except ValidationError as exc:
            raise RemoteFetchError(
                kind, url, f"malformed records ({exc.error_count()} errors)"
            ) from exc

        logger.info(
            "Fetched remote series",
            extra={"kind": kind.value, "url": url, "sample_count": len(series)},
        )
        return series

    async def fetch(self, kind: SeriesKind, date_range: Optional[DateRange] = None) -> Series:
        """Fetch the full series, then narrow it to ``date_range`` when given."""
        series = await self.fetch_full(kind)
        if date_range is None or date_range.is_full:
            return series
        return filter_range(series, date_range)


def build_default_fetcher(transport: Optional[httpx.AsyncBaseTransport] = None) -> RemoteSeriesFetcher:
    settings = get_settings()
    return RemoteSeriesFetcher(
        base_url=settings.remote_base_url,
        endpoints={
            SeriesKind.temperature: settings.temperature_endpoint,
            SeriesKind.precipitation: settings.precipitation_endpoint,
        },
        timeout=settings.remote_timeout,
        transport=transport,
    )
