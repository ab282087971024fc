from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

import typer

from app.schemas import SampleRecord
from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_reduction, render_series, render_summary
from services.render_queue import build_scheduler


class KindOption(str, Enum):
    temperature = "temperature"
    precipitation = "precipitation"


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for querying the climate series service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)

_DATE_FORMATS = ["%Y-%m-%d"]


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1)
    return state


def _as_date(value: Optional[datetime]):
    return value.date() if value is not None else None


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Service base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Request timeout in seconds.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("series")
def series_command(
    ctx: typer.Context,
    kind: KindOption = typer.Argument(..., help="Series kind."),
    from_date: Optional[datetime] = typer.Option(
        None, "--from", formats=_DATE_FORMATS, help="Inclusive lower bound (YYYY-MM-DD)."
    ),
    to_date: Optional[datetime] = typer.Option(
        None, "--to", formats=_DATE_FORMATS, help="Exclusive upper bound (YYYY-MM-DD)."
    ),
) -> None:
    """Print the samples of a series."""
    state = _get_state(ctx)
    payload = state.client.get_series(kind.value, _as_date(from_date), _as_date(to_date))
    render_series(payload)


@app.command("summary")
def summary_command(
    ctx: typer.Context,
    kind: KindOption = typer.Argument(..., help="Series kind."),
    width: Optional[int] = typer.Option(
        None, "--width", "-w", min=1, help="Pixel width (defaults to CLI_PIXEL_WIDTH or 60)."
    ),
    from_date: Optional[datetime] = typer.Option(None, "--from", formats=_DATE_FORMATS),
    to_date: Optional[datetime] = typer.Option(None, "--to", formats=_DATE_FORMATS),
) -> None:
    """Print reduction statistics and a sparkline of a series."""
    state = _get_state(ctx)
    pixel_width = width if width is not None else state.config.pixel_width
    payload = state.client.get_summary(
        kind.value, pixel_width, _as_date(from_date), _as_date(to_date)
    )
    render_summary(payload)


@app.command("plot")
def plot_command(
    ctx: typer.Context,
    kind: KindOption = typer.Argument(..., help="Series kind."),
    width: Optional[int] = typer.Option(
        None, "--width", "-w", min=1, help="Pixel width (defaults to CLI_PIXEL_WIDTH or 60)."
    ),
    from_date: Optional[datetime] = typer.Option(None, "--from", formats=_DATE_FORMATS),
    to_date: Optional[datetime] = typer.Option(None, "--to", formats=_DATE_FORMATS),
) -> None:
    """Fetch raw samples and reduce them locally for the terminal width."""
    state = _get_state(ctx)
    pixel_width = width if width is not None else state.config.pixel_width
    payload = state.client.get_series(kind.value, _as_date(from_date), _as_date(to_date))
    series = [
        SampleRecord.model_validate(item).to_sample() for item in payload.get("samples") or []
    ]
    scheduler = build_scheduler()
    try:
        reduction = scheduler.submit(series, pixel_width).result()
    finally:
        scheduler.shutdown(wait=True)
    render_reduction(kind.value, payload.get("from_cache"), pixel_width, reduction)
