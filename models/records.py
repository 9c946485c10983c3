"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


@dataclass(frozen=True, slots=True)
class TankReading:
    """A single tank-level sample reported by a telemetry provider.

    ``level_percent`` and ``level_liters`` come straight from the sensor and
    may be missing, NaN or out of range.
    """

    asset_id: str
    timestamp: datetime
    level_percent: Optional[float] = None
    level_liters: Optional[float] = None


@dataclass(frozen=True, slots=True)
class TankAsset:
    """Metadata for a monitored tank."""

    asset_id: str
    name: str
    capacity_liters: Optional[float] = None
    refill_threshold_percent: Optional[float] = None
    current_level_percent: Optional[float] = None
    current_level_liters: Optional[float] = None


class TrendDirection(str, Enum):
    increasing = "increasing"
    decreasing = "decreasing"
    stable = "stable"


class Confidence(str, Enum):
    high = "high"
    medium = "medium"
    low = "low"
