from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Optional, Sequence

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def format_timestamp(value: Any) -> str:
    if not isinstance(value, int):
        return str(value)
    moment = datetime.fromtimestamp(value, tz=timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%SZ")


def render_latest(payload: Optional[Dict[str, Any]]) -> None:
    echo_heading("Latest Reading")
    if payload is None:
        typer.echo("No readings recorded yet.")
        return
    echo_key_values(
        [
            ("id", payload.get("id")),
            ("tds_ppm", payload.get("tds_ppm")),
            ("timestamp", format_timestamp(payload.get("timestamp"))),
        ]
    )


def render_history(readings: Sequence[Dict[str, Any]]) -> None:
    echo_heading(f"Reading History ({len(readings)})")
    if not readings:
        typer.echo("No readings recorded yet.")
        return
    for reading in readings:
        typer.echo(
            f"  - {format_timestamp(reading.get('timestamp'))}  "
            f"{str(reading.get('tds_ppm')):>10} ppm  (id {reading.get('id')})"
        )
