from __future__ import annotations

from typing import Any, Dict, List

import httpx
import typer

from cli.config import CLIConfig


class ApiClient:
    """Minimal HTTP client for the analytics service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.timeout)

    def close(self) -> None:
        self._client.close()

    def get_analytics(self, asset_id: str) -> Dict[str, Any]:
        return self._get(f"/assets/{asset_id}/analytics", asset_id=asset_id)

    def get_consumption(self, asset_id: str, window_days: int) -> Dict[str, Any]:
        return self._get(
            f"/assets/{asset_id}/consumption",
            asset_id=asset_id,
            params={"window_days": window_days},
        )

    def get_refills(self, asset_id: str, days: int) -> List[Dict[str, Any]]:
        return self._get(f"/assets/{asset_id}/refills", asset_id=asset_id, params={"days": days})

    def get_fleet(self) -> Dict[str, Any]:
        return self._get("/fleet/analytics")

    def _get(self, path: str, asset_id: str | None = None, params: Dict[str, Any] | None = None) -> Any:
        try:
            response = self._client.get(path, params=params)
            if response.status_code == 404 and asset_id is not None:
                raise typer.BadParameter(f"Asset {asset_id} was not found.")
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.TransportError as exc:
            typer.secho(
                f"Could not reach {self._config.base_url}: {exc}", fg=typer.colors.RED, err=True
            )
            raise typer.Exit(code=1) from exc
        return response.json()

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: str | None = None
        try:
            data = exc.response.json()
            detail = data.get("detail")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
