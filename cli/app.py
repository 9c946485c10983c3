from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import render_analytics, render_consumption, render_fleet, render_refills


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Query tank consumption analytics from the analytics service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1, message="CLI state is uninitialized.")
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Analytics API base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for each API request.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("analytics")
def analytics_command(
    ctx: typer.Context,
    asset_id: str = typer.Argument(..., help="Tank asset identifier."),
) -> None:
    """Show 24h/7d/30d consumption, trend and forecast for a tank."""
    state = _get_state(ctx)
    render_analytics(state.client.get_analytics(asset_id))


@app.command("consumption")
def consumption_command(
    ctx: typer.Context,
    asset_id: str = typer.Argument(..., help="Tank asset identifier."),
    window_days: int = typer.Option(7, "--window-days", "-w", min=1, max=365, help="Trailing window in days."),
) -> None:
    """Show the refill-aware daily consumption rate over one window."""
    state = _get_state(ctx)
    render_consumption(state.client.get_consumption(asset_id, window_days))


@app.command("refills")
def refills_command(
    ctx: typer.Context,
    asset_id: str = typer.Argument(..., help="Tank asset identifier."),
    days: int = typer.Option(30, "--days", "-d", min=1, max=365, help="Trailing window in days."),
) -> None:
    """List refill events detected for a tank."""
    state = _get_state(ctx)
    render_refills(asset_id, state.client.get_refills(asset_id, days))


@app.command("fleet")
def fleet_command(ctx: typer.Context) -> None:
    """Show the fleet summary and a line per tank."""
    state = _get_state(ctx)
    render_fleet(state.client.get_fleet())
