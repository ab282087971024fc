from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_REMOTE_BASE_URL_ENV = "REMOTE_BASE_URL"
_TEMPERATURE_ENDPOINT_ENV = "TEMPERATURE_ENDPOINT"
_PRECIPITATION_ENDPOINT_ENV = "PRECIPITATION_ENDPOINT"
_REMOTE_TIMEOUT_ENV = "REMOTE_TIMEOUT_SECONDS"
_STORE_ENABLED_ENV = "SERIES_STORE_ENABLED"
_STORE_ROOT_ENV = "SERIES_STORE_ROOT_PATH"
_WORKER_COUNT_ENV = "REDUCTION_WORKER_COUNT"
_LOG_LEVEL_ENV = "LOG_LEVEL"

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    remote_base_url: str
    temperature_endpoint: str
    precipitation_endpoint: str
    remote_timeout: float
    store_enabled: bool
    store_root_path: Optional[str]
    reduction_workers: int
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_bool_env(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip().lower()
    if candidate in _TRUTHY:
        return True
    if candidate in _FALSY:
        return False
    return default


def _read_positive_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_worker_count(default: int) -> int:
    value = os.getenv(_WORKER_COUNT_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        remote_base_url=_read_str_env(_REMOTE_BASE_URL_ENV, "http://localhost:8080/data").rstrip("/"),
        temperature_endpoint=_read_str_env(_TEMPERATURE_ENDPOINT_ENV, "temperature.json"),
        precipitation_endpoint=_read_str_env(_PRECIPITATION_ENDPOINT_ENV, "precipitation.json"),
        remote_timeout=_read_positive_float(_REMOTE_TIMEOUT_ENV, 30.0),
        store_enabled=_read_bool_env(_STORE_ENABLED_ENV, True),
        store_root_path=_read_optional_env(_STORE_ROOT_ENV, "./tmp/series_store"),
        reduction_workers=_read_worker_count(1),
        log_level=_read_log_level("INFO"),
    )
