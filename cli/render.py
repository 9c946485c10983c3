from __future__ import annotations

from typing import Any, Dict, Iterable, List, Optional

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {format_value(value)}")


def format_value(value: Any) -> str:
    if value is None:
        return "n/a"
    if isinstance(value, float):
        return f"{value:.2f}"
    return str(value)


def format_sparkline(values: Iterable[Optional[float]]) -> str:
    return " ".join("-" if value is None else f"{value:.0f}" for value in values)


def render_consumption(payload: Dict[str, Any]) -> None:
    echo_heading(f"Consumption ({payload.get('window_days')}d window)")
    echo_key_values(
        [
            ("daily_consumption_litres", payload.get("daily_consumption_litres")),
            ("daily_consumption_percentage", payload.get("daily_consumption_percentage")),
            ("refill_events_excluded", payload.get("refill_events_excluded")),
            ("data_points", payload.get("data_points")),
            ("confidence", payload.get("confidence")),
        ]
    )


def render_analytics(payload: Dict[str, Any]) -> None:
    echo_heading(f"Tank {payload.get('name')} ({payload.get('asset_id')})")
    echo_key_values(
        [
            ("as_of", payload.get("as_of")),
            ("capacity_liters", payload.get("capacity_liters")),
            ("current_level_percent", payload.get("current_level_percent")),
            ("current_level_litres", payload.get("current_level_litres")),
        ]
    )

    for key in ("consumption_24h", "consumption_7d", "consumption_30d"):
        typer.echo()
        render_consumption(payload.get(key) or {})

    trend = payload.get("trend") or {}
    typer.echo()
    echo_heading("Trend")
    typer.echo(f"{trend.get('indicator', '')} {trend.get('direction', 'stable')}")
    typer.echo(f"sparkline_litres: {format_sparkline(payload.get('sparkline_litres') or [])}")

    forecast = payload.get("forecast") or {}
    typer.echo()
    echo_heading("Forecast (estimate)")
    if forecast.get("days_remaining") is None:
        typer.echo("No forecast available.")
    else:
        echo_key_values(
            [
                ("days_remaining", forecast.get("days_remaining")),
                ("estimated_refill_date", forecast.get("estimated_refill_date")),
                ("rate_window_days", forecast.get("rate_window_days")),
            ]
        )


def render_refills(asset_id: str, events: List[Dict[str, Any]]) -> None:
    echo_heading(f"Refills for {asset_id}")
    if not events:
        typer.echo("No refill events detected.")
        return
    for event in events:
        typer.echo(
            f"  - {event.get('timestamp')}: "
            f"{format_value(event.get('level_before'))}% -> {format_value(event.get('level_after'))}%"
        )


def render_fleet(payload: Dict[str, Any]) -> None:
    summary = payload.get("summary") or {}
    echo_heading("Fleet Summary")
    echo_key_values(
        [
            ("as_of", payload.get("as_of")),
            ("tank_count", summary.get("tank_count")),
            ("tanks_with_data", summary.get("tanks_with_data")),
            ("total_consumption_24h_litres", summary.get("total_consumption_24h_litres")),
            ("total_consumption_7d_litres", summary.get("total_consumption_7d_litres")),
            ("total_consumption_30d_litres", summary.get("total_consumption_30d_litres")),
            ("fleet_trend", summary.get("fleet_trend")),
            ("most_consumed_asset_id", summary.get("most_consumed_asset_id")),
        ]
    )

    tanks = payload.get("tanks") or []
    typer.echo()
    echo_heading("Tanks")
    if tanks:
        for tank in tanks:
            forecast = tank.get("forecast") or {}
            trend = tank.get("trend") or {}
            typer.echo(
                f"  - {tank.get('asset_id')}: "
                f"{format_value((tank.get('consumption_24h') or {}).get('daily_consumption_litres'))} L/day "
                f"{trend.get('indicator', '')} "
                f"days_remaining={format_value(forecast.get('days_remaining'))}"
            )
    else:
        typer.echo("No tanks analyzed.")

    failures = payload.get("failures") or []
    typer.echo()
    echo_heading("Failures")
    if failures:
        for failure in failures:
            typer.echo(f"  - {failure.get('asset_id')}: {failure.get('reason')}")
    else:
        typer.echo("No failures recorded.")
