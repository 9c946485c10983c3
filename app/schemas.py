"""Pydantic schemas for persistence and the HTTP API layer."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models.records import Confidence, TankAsset, TankReading, TrendDirection


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ReadingRecord(BaseModel):
    """Persisted form of a single tank reading."""

    asset_id: str = Field(..., min_length=1)
    timestamp: datetime
    level_percent: Optional[float] = None
    level_liters: Optional[float] = None

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, value: datetime) -> datetime:
        return _as_utc(value)

    def to_domain(self) -> TankReading:
        return TankReading(
            asset_id=self.asset_id,
            timestamp=self.timestamp,
            level_percent=self.level_percent,
            level_liters=self.level_liters,
        )

    @classmethod
    def from_domain(cls, reading: TankReading) -> "ReadingRecord":
        return cls(
            asset_id=reading.asset_id,
            timestamp=reading.timestamp,
            level_percent=reading.level_percent,
            level_liters=reading.level_liters,
        )


class AssetRecord(BaseModel):
    """Tank metadata as stored and as listed by the API."""

    model_config = ConfigDict(from_attributes=True)

    asset_id: str = Field(..., min_length=1)
    name: str
    capacity_liters: Optional[float] = Field(default=None, ge=0)
    refill_threshold_percent: Optional[float] = Field(default=None, gt=0)
    current_level_percent: Optional[float] = None
    current_level_liters: Optional[float] = None

    def to_domain(self) -> TankAsset:
        return TankAsset(
            asset_id=self.asset_id,
            name=self.name,
            capacity_liters=self.capacity_liters,
            refill_threshold_percent=self.refill_threshold_percent,
            current_level_percent=self.current_level_percent,
            current_level_liters=self.current_level_liters,
        )


class RefillEventResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    timestamp: datetime
    level_before: float
    level_after: float
    increase_percent: float


class ConsumptionWindowResponse(BaseModel):
    """Refill-aware consumption estimate for one window."""

    model_config = ConfigDict(from_attributes=True)

    window_days: int = Field(..., ge=1)
    daily_consumption_litres: Optional[float] = None
    daily_consumption_percentage: Optional[float] = None
    refill_events_excluded: int = Field(default=0, ge=0)
    data_points: int = Field(default=0, ge=0)
    readings_skipped: int = Field(default=0, ge=0)
    r_squared: Optional[float] = None
    confidence: Confidence = Confidence.low
    refill_events: List[RefillEventResponse] = Field(default_factory=list)


class DailyConsumptionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    day: date
    litres: Optional[float] = None
    percentage: Optional[float] = None
    readings: int = Field(default=0, ge=0)


class TrendResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    direction: TrendDirection
    indicator: str
    change_percent: Optional[float] = None


class ForecastResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    days_remaining: Optional[float] = None
    estimated_refill_date: Optional[date] = Field(
        default=None, description="Linear estimate of when the tank runs dry."
    )
    rate_window_days: Optional[int] = None
    capped: bool = False
    basis: str


class TankAnalyticsResponse(BaseModel):
    """Full multi-window analytics for one tank."""

    model_config = ConfigDict(from_attributes=True)

    asset_id: str
    name: str
    as_of: datetime
    capacity_liters: Optional[float] = None
    current_level_percent: Optional[float] = None
    current_level_litres: Optional[float] = None
    refill_threshold_percent: float
    consumption_24h: ConsumptionWindowResponse
    consumption_7d: ConsumptionWindowResponse
    consumption_30d: ConsumptionWindowResponse
    weekly_litres: Optional[float] = None
    weekly_percentage: Optional[float] = None
    monthly_litres: Optional[float] = None
    monthly_percentage: Optional[float] = None
    daily_breakdown: List[DailyConsumptionResponse] = Field(default_factory=list)
    sparkline_litres: List[Optional[float]] = Field(default_factory=list)
    sparkline_percentage: List[Optional[float]] = Field(default_factory=list)
    trend: TrendResponse
    forecast: ForecastResponse
    last_refill_at: Optional[datetime] = None
    daily_average_litres: Optional[float] = None
    vs_7d_average_pct: Optional[float] = None
    efficiency_score: Optional[float] = None


class FleetFailureResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    asset_id: str
    reason: str


class FleetSummaryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    tank_count: int = Field(default=0, ge=0)
    tanks_with_data: int = Field(default=0, ge=0)
    total_consumption_24h_litres: Optional[float] = None
    total_consumption_7d_litres: Optional[float] = None
    total_consumption_30d_litres: Optional[float] = None
    average_consumption_24h_litres: Optional[float] = None
    fleet_trend: TrendDirection = TrendDirection.stable
    most_consumed_asset_id: Optional[str] = None
    most_consumed_litres: Optional[float] = None
    average_efficiency_score: Optional[float] = None


class FleetReportResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    as_of: datetime
    processing_ms: int = Field(..., ge=0)
    summary: FleetSummaryResponse
    tanks: List[TankAnalyticsResponse] = Field(default_factory=list)
    failures: List[FleetFailureResponse] = Field(default_factory=list)
