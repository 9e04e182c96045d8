from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_history, render_latest
from logging_config import configure_logging
from services.ingestion import IngestionState, build_default_ingestor


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for operating the TDS telemetry bridge.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1)
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Bridge API base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for each API request.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, request_timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("latest")
def latest_command(ctx: typer.Context) -> None:
    """Show the most recently ingested reading."""
    state = _get_state(ctx)
    render_latest(state.client.get_latest())


@app.command("history")
def history_command(
    ctx: typer.Context,
    limit: Optional[int] = typer.Option(
        None,
        "--limit",
        "-n",
        min=1,
        help="Number of readings to show (the server caps this at its history limit).",
    ),
) -> None:
    """Show recent readings, newest first."""
    state = _get_state(ctx)
    render_history(state.client.get_history(limit))


@app.command("ingest")
def ingest_command() -> None:
    """Run the ingestion loop in the foreground until interrupted."""
    configure_logging()
    ingestor = build_default_ingestor()
    typer.echo(f"Ingesting readings from topic {ingestor.source.topic!r} (Ctrl+C to stop)...")
    try:
        ingestor.run()
    except KeyboardInterrupt:
        typer.echo("Interrupted, shutting down.")
    finally:
        ingestor.shutdown()

    stats = ingestor.stats
    typer.echo(
        f"Persisted {stats.readings_persisted} of {stats.messages_received} messages "
        f"({stats.messages_dropped} dropped, {stats.store_failures} store failures)."
    )
    if stats.state is IngestionState.failed:
        typer.secho("Ingestion stopped after a broker failure.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
