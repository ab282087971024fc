from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional, Sequence

import typer

from services.downsampler import ReductionResult

_SPARK_LEVELS = "▁▂▃▄▅▆▇█"


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def sparkline(values: Sequence[float], low: Optional[float] = None, high: Optional[float] = None) -> str:
    """Map values onto block characters scaled between ``low`` and ``high``."""
    if not values:
        return ""
    low = min(values) if low is None else low
    high = max(values) if high is None else high
    span = high - low
    top = len(_SPARK_LEVELS) - 1
    chars: List[str] = []
    for value in values:
        if span <= 0:
            index = 0
        else:
            index = round((value - low) / span * top)
        chars.append(_SPARK_LEVELS[max(0, min(top, index))])
    return "".join(chars)


def render_series(payload: Dict[str, Any]) -> None:
    samples = payload.get("samples") or []
    echo_heading(f"Series: {payload.get('kind')}")
    echo_key_values(
        [
            ("from_cache", payload.get("from_cache")),
            ("sample_count", len(samples)),
        ]
    )
    typer.echo()
    if not samples:
        typer.echo("No samples in range.")
        return
    for sample in samples:
        typer.echo(f"  {sample.get('t')}  {sample.get('v')}")


def render_summary(payload: Dict[str, Any]) -> None:
    buckets = payload.get("buckets") or []
    echo_heading(f"Summary: {payload.get('kind')}")
    echo_key_values(
        [
            ("from_cache", payload.get("from_cache")),
            ("pixel_width", payload.get("pixel_width")),
            ("bucket_count", len(buckets)),
            ("min_value", payload.get("min_value")),
            ("max_value", payload.get("max_value")),
            ("observed_min", payload.get("observed_min")),
            ("observed_max", payload.get("observed_max")),
        ]
    )
    typer.echo()
    means = [bucket.get("mean_value") for bucket in buckets]
    typer.echo(sparkline(means, payload.get("observed_min"), payload.get("observed_max")))


def render_reduction(kind: str, from_cache: Any, pixel_width: int, reduction: ReductionResult) -> None:
    render_summary(
        {
            "kind": kind,
            "from_cache": from_cache,
            "pixel_width": pixel_width,
            "buckets": [{"mean_value": bucket.mean_value} for bucket in reduction.buckets],
            "min_value": reduction.min_value,
            "max_value": reduction.max_value,
            "observed_min": reduction.observed_min,
            "observed_max": reduction.observed_max,
        }
    )
