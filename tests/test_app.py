from datetime import datetime, timedelta, timezone
from typing import Dict, Iterator

import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from datastore.assets import AssetRegistry, build_default_asset_registry
from datastore.readings import ReadingStore, build_default_reading_store
from models.records import TankAsset, TankReading
from services.fleet import FleetAnalyzer, build_default_fleet_analyzer
from services.windows import MultiWindowAggregator
from settings import get_settings


def _seed(store: ReadingStore, registry: AssetRegistry) -> None:
    now = datetime.now(timezone.utc)
    registry.put_asset(TankAsset(asset_id="tank-1", name="North Yard", capacity_liters=1000.0))
    registry.put_asset(TankAsset(asset_id="tank-empty", name="Spare"))
    # 6-hourly readings draining 2 %/day with a refill five days ago.
    readings = []
    for step in range(20 * 4, -1, -1):
        days_ago = step / 4
        if days_ago > 5:
            level = 40.0 + 2.0 * (days_ago - 5)
        else:
            level = 90.0 - 2.0 * (5 - days_ago)
        readings.append(
            TankReading(
                asset_id="tank-1",
                timestamp=now - timedelta(days=days_ago, minutes=1),
                level_percent=level,
            )
        )
    store.put_readings(readings)


@pytest.fixture
def api_client(tmp_path, monkeypatch) -> Iterator[TestClient]:
    analyzers: Dict[int, FleetAnalyzer] = {}

    def build_test_analyzer(workers: int | None = None) -> FleetAnalyzer:
        worker_count = workers or 2
        analyzer = analyzers.get(worker_count)
        if analyzer is None:
            store = ReadingStore(persistence_path=tmp_path / "readings.json")
            registry = AssetRegistry(persistence_path=tmp_path / "assets.json")
            _seed(store, registry)
            analyzer = FleetAnalyzer(
                registry=registry,
                aggregator=MultiWindowAggregator(store=store),
                workers=worker_count,
            )
            analyzers[worker_count] = analyzer
        return analyzer

    def cache_clear() -> None:
        while analyzers:
            _, analyzer = analyzers.popitem()
            analyzer.shutdown()

    build_test_analyzer.cache_clear = cache_clear  # type: ignore[attr-defined]

    monkeypatch.setattr("app.main.build_default_fleet_analyzer", build_test_analyzer)
    monkeypatch.setattr("app.api.build_default_fleet_analyzer", build_test_analyzer)

    app = create_app()
    with TestClient(app) as client:
        yield client

    cache_clear()


def test_lifespan_shuts_down_analyzer_and_clears_cache(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("TANK_READINGS_PATH", str(tmp_path / "readings.json"))
    monkeypatch.setenv("TANK_ASSETS_PATH", str(tmp_path / "assets.json"))
    caches = (get_settings, build_default_reading_store, build_default_asset_registry)
    for cache in caches:
        cache.cache_clear()
    app = create_app()

    try:
        with TestClient(app):
            analyzer_during = build_default_fleet_analyzer()
            assert analyzer_during.executor._shutdown is False

        analyzer_after = build_default_fleet_analyzer()
        try:
            assert analyzer_after is not analyzer_during
            assert analyzer_after.executor._shutdown is False
        finally:
            analyzer_after.shutdown()
            build_default_fleet_analyzer.cache_clear()
    finally:
        for cache in caches:
            cache.cache_clear()


def test_health_and_root(api_client: TestClient) -> None:
    assert api_client.get("/health").json() == {"status": "ok"}
    assert api_client.get("/").json()["status"] == "ok"


def test_list_assets(api_client: TestClient) -> None:
    response = api_client.get("/assets")

    assert response.status_code == 200
    assert [asset["asset_id"] for asset in response.json()] == ["tank-1", "tank-empty"]
    assert response.json()[0]["capacity_liters"] == 1000.0


def test_consumption_endpoint_excludes_refill(api_client: TestClient) -> None:
    response = api_client.get("/assets/tank-1/consumption", params={"window_days": 7})

    assert response.status_code == 200
    payload = response.json()
    assert payload["window_days"] == 7
    assert payload["refill_events_excluded"] == 1
    assert payload["daily_consumption_percentage"] == pytest.approx(2.0)
    assert payload["daily_consumption_litres"] == pytest.approx(20.0)
    assert payload["confidence"] == "high"
    assert len(payload["refill_events"]) == 1


def test_consumption_without_data_returns_nulls_not_zero(api_client: TestClient) -> None:
    payload = api_client.get("/assets/tank-empty/consumption").json()

    assert payload["daily_consumption_litres"] is None
    assert payload["daily_consumption_percentage"] is None
    assert payload["data_points"] == 0


def test_consumption_rejects_invalid_window(api_client: TestClient) -> None:
    response = api_client.get("/assets/tank-1/consumption", params={"window_days": 0})

    assert response.status_code == 422


def test_analytics_endpoint(api_client: TestClient) -> None:
    response = api_client.get("/assets/tank-1/analytics")

    assert response.status_code == 200
    payload = response.json()
    assert payload["consumption_24h"]["daily_consumption_litres"] == pytest.approx(20.0)
    assert payload["weekly_litres"] == pytest.approx(140.0)
    assert len(payload["sparkline_litres"]) == 7
    assert payload["trend"]["indicator"] in {"↑", "↓", "→"}
    assert payload["forecast"]["basis"] == "linear_estimate"
    assert payload["forecast"]["days_remaining"] > 0
    assert payload["forecast"]["estimated_refill_date"] is not None
    assert payload["last_refill_at"] is not None


def test_refills_endpoint(api_client: TestClient) -> None:
    response = api_client.get("/assets/tank-1/refills", params={"days": 30})

    assert response.status_code == 200
    events = response.json()
    assert len(events) == 1
    assert events[0]["level_after"] == pytest.approx(90.0)
    assert events[0]["increase_percent"] == pytest.approx(49.5)


def test_fleet_endpoint(api_client: TestClient) -> None:
    response = api_client.get("/fleet/analytics")

    assert response.status_code == 200
    payload = response.json()
    assert payload["summary"]["tank_count"] == 2
    assert payload["summary"]["tanks_with_data"] == 1
    assert payload["summary"]["most_consumed_asset_id"] == "tank-1"
    assert payload["failures"] == []
    assert isinstance(payload["processing_ms"], int)


@pytest.mark.parametrize(
    "path",
    [
        "/assets/missing/consumption",
        "/assets/missing/analytics",
        "/assets/missing/refills",
    ],
)
def test_unknown_asset_returns_not_found(api_client: TestClient, path: str) -> None:
    response = api_client.get(path)

    assert response.status_code == 404
    assert "missing" in response.json()["detail"]
