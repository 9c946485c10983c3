from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Optional, TypeVar


_READINGS_PATH_ENV = "TANK_READINGS_PATH"
_ASSETS_PATH_ENV = "TANK_ASSETS_PATH"
_WORKER_COUNT_ENV = "ANALYTICS_WORKER_COUNT"
_REFILL_THRESHOLD_ENV = "REFILL_THRESHOLD_PERCENT"
_CACHE_TTL_ENV = "RESULT_CACHE_TTL_SECONDS"
_LOG_LEVEL_ENV = "LOG_LEVEL"

# Cached analytics must never outlive one daily reporting cycle.
_MAX_CACHE_TTL_SECONDS = 86400.0

_N = TypeVar("_N", int, float)


@dataclass(frozen=True)
class Settings:
    readings_path: Optional[str]
    assets_path: Optional[str]
    analytics_workers: int
    refill_threshold_percent: float
    cache_ttl_seconds: float
    log_level: str


def _raw_env(name: str) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return None
    return value.strip()


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    candidate = _raw_env(name)
    if candidate is None:
        return default
    return candidate or None


def _read_number(
    name: str,
    default: _N,
    parse: Callable[[str], _N],
    accept: Callable[[_N], bool],
) -> _N:
    """Parse ``name`` from the environment, keeping ``default`` for blank or rejected values."""
    candidate = _raw_env(name)
    if not candidate:
        return default
    try:
        parsed = parse(candidate)
    except ValueError:
        return default
    return parsed if accept(parsed) else default


def _read_log_level(default: str) -> str:
    candidate = _raw_env(_LOG_LEVEL_ENV)
    return candidate.upper() if candidate else default


@lru_cache
def get_settings() -> Settings:
    cache_ttl = _read_number(_CACHE_TTL_ENV, 300.0, float, lambda ttl: ttl >= 0)
    return Settings(
        readings_path=_read_optional_env(_READINGS_PATH_ENV, "./tmp/readings.json"),
        assets_path=_read_optional_env(_ASSETS_PATH_ENV, "./tmp/assets.json"),
        analytics_workers=_read_number(_WORKER_COUNT_ENV, 4, int, lambda count: count > 0),
        refill_threshold_percent=_read_number(
            _REFILL_THRESHOLD_ENV, 10.0, float, lambda threshold: threshold > 0
        ),
        cache_ttl_seconds=min(cache_ttl, _MAX_CACHE_TTL_SECONDS),
        log_level=_read_log_level("INFO"),
    )
