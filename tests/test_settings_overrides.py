from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

from datastore.assets import build_default_asset_registry
from datastore.readings import build_default_reading_store
from logging_config import ContextualFormatter
from services.fleet import build_default_fleet_analyzer
from settings import get_settings

_CACHES = (
    get_settings,
    build_default_reading_store,
    build_default_asset_registry,
    build_default_fleet_analyzer,
)


def _clear_caches(caches: Iterable) -> None:
    for cache in caches:
        cache.cache_clear()


def test_environment_overrides_apply(monkeypatch, tmp_path) -> None:
    readings_path = tmp_path / "readings.json"
    assets_path = tmp_path / "assets.json"

    monkeypatch.setenv("TANK_READINGS_PATH", str(readings_path))
    monkeypatch.setenv("TANK_ASSETS_PATH", str(assets_path))
    monkeypatch.setenv("ANALYTICS_WORKER_COUNT", "2")
    monkeypatch.setenv("REFILL_THRESHOLD_PERCENT", "15")
    monkeypatch.setenv("RESULT_CACHE_TTL_SECONDS", "60")
    _clear_caches(_CACHES)

    store = build_default_reading_store()
    registry = build_default_asset_registry()
    analyzer = build_default_fleet_analyzer()

    try:
        assert store.persistence_path == readings_path
        assert registry.persistence_path == assets_path
        assert analyzer.executor._max_workers == 2
        assert analyzer.aggregator.config.refill_threshold_percent == 15.0
        assert analyzer.aggregator.cache is not None
        assert analyzer.aggregator.cache.ttl_seconds == 60.0
        assert analyzer.aggregator.store is store
    finally:
        analyzer.shutdown()
        _clear_caches(_CACHES)


def test_invalid_values_fall_back_to_defaults(monkeypatch) -> None:
    monkeypatch.setenv("ANALYTICS_WORKER_COUNT", "0")
    monkeypatch.setenv("REFILL_THRESHOLD_PERCENT", "-5")
    monkeypatch.setenv("RESULT_CACHE_TTL_SECONDS", "soon")
    monkeypatch.setenv("LOG_LEVEL", " debug ")
    get_settings.cache_clear()

    try:
        settings = get_settings()
        assert settings.analytics_workers == 4
        assert settings.refill_threshold_percent == 10.0
        assert settings.cache_ttl_seconds == 300.0
        assert settings.log_level == "DEBUG"
    finally:
        get_settings.cache_clear()


def test_cache_ttl_is_capped_and_zero_disables_cache(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("TANK_READINGS_PATH", str(tmp_path / "readings.json"))
    monkeypatch.setenv("TANK_ASSETS_PATH", str(tmp_path / "assets.json"))
    monkeypatch.setenv("RESULT_CACHE_TTL_SECONDS", "999999")
    _clear_caches(_CACHES)
    try:
        assert get_settings().cache_ttl_seconds == 86400.0

        monkeypatch.setenv("RESULT_CACHE_TTL_SECONDS", "0")
        _clear_caches(_CACHES)
        analyzer = build_default_fleet_analyzer()
        try:
            assert analyzer.aggregator.cache is None
        finally:
            analyzer.shutdown()
    finally:
        _clear_caches(_CACHES)


def test_empty_path_disables_persistence(monkeypatch) -> None:
    monkeypatch.setenv("TANK_READINGS_PATH", "")
    _clear_caches(_CACHES)
    try:
        assert build_default_reading_store().persistence_path is None
        assert build_default_reading_store(str(Path("explicit.json"))).persistence_path == Path(
            "explicit.json"
        )
    finally:
        _clear_caches(_CACHES)


def test_contextual_formatter_appends_extras() -> None:
    formatter = ContextualFormatter(fmt="%(message)s")
    record = logging.LogRecord("services.fleet", logging.WARNING, __file__, 1, "failed", None, None)
    record.asset_id = "tank-1"
    record.reason = "boom"

    assert formatter.format(record) == "failed | asset_id=tank-1 reason=boom"
