"""Per-tank analytics across the 24h, 7d and 30d windows."""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, List, Optional

from datastore.cache import ResultCache
from datastore.readings import ReadingStore
from models.records import TankAsset
from services.consumption import (
    AnalysisConfig,
    ConsumptionCalculator,
    ConsumptionResult,
    LevelSample,
    finite_or_none,
    level_in_range,
    normalize_timestamp,
    positive_or_none,
    prepare_samples,
    resolve_threshold,
)
from services.forecast import Forecast, project_forecast
from services.trend import TrendResult, classify_trend

logger = logging.getLogger(__name__)

_VS_AVERAGE_LIMIT = 999.0
_EFFICIENCY_CEILING = 200.0


@dataclass(frozen=True)
class DailyConsumption:
    """Simple oldest-minus-newest delta for one UTC calendar day."""

    day: date
    litres: Optional[float] = None
    percentage: Optional[float] = None
    readings: int = 0


@dataclass
class TankAnalytics:
    asset_id: str
    name: str
    as_of: datetime
    capacity_liters: Optional[float]
    current_level_percent: Optional[float]
    current_level_litres: Optional[float]
    refill_threshold_percent: float
    consumption_24h: ConsumptionResult
    consumption_7d: ConsumptionResult
    consumption_30d: ConsumptionResult
    weekly_litres: Optional[float] = None
    weekly_percentage: Optional[float] = None
    monthly_litres: Optional[float] = None
    monthly_percentage: Optional[float] = None
    daily_breakdown: List[DailyConsumption] = field(default_factory=list)
    trend: TrendResult = field(default_factory=TrendResult)
    forecast: Forecast = field(default_factory=Forecast)
    last_refill_at: Optional[datetime] = None
    daily_average_litres: Optional[float] = None
    vs_7d_average_pct: Optional[float] = None
    efficiency_score: Optional[float] = None

    @property
    def sparkline_litres(self) -> List[Optional[float]]:
        return [day.litres for day in self.daily_breakdown]

    @property
    def sparkline_percentage(self) -> List[Optional[float]]:
        return [day.percentage for day in self.daily_breakdown]


def _scaled(value: Optional[float], factor: int) -> Optional[float]:
    return value * factor if value is not None else None


class MultiWindowAggregator:
    """Runs the consumption calculator over several windows for one tank.

    The 7-day headline rate comes from the regression while the sparkline uses
    independent per-day deltas, so the two can legitimately disagree around
    refills.
    """

    def __init__(
        self,
        store: ReadingStore,
        calculator: Optional[ConsumptionCalculator] = None,
        cache: Optional[ResultCache] = None,
    ) -> None:
        self.store = store
        self.calculator = calculator or ConsumptionCalculator()
        self.cache = cache

    @property
    def config(self) -> AnalysisConfig:
        return self.calculator.config

    def threshold_for(self, asset: TankAsset) -> float:
        return resolve_threshold(
            asset.refill_threshold_percent, self.config.refill_threshold_percent
        )

    def consumption_for_window(
        self, asset: TankAsset, window_days: int, as_of: datetime
    ) -> ConsumptionResult:
        as_of = normalize_timestamp(as_of)
        key = (asset.asset_id, window_days, as_of.date())
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                return cached

        readings = self.store.fetch_readings(
            asset.asset_id, as_of - timedelta(days=window_days), as_of
        )
        result = self.calculator.calculate(
            readings,
            window_days,
            capacity_liters=asset.capacity_liters,
            refill_threshold_percent=self.threshold_for(asset),
        )
        if self.cache is not None:
            self.cache.put(key, result)
        return result

    def daily_breakdown(self, asset: TankAsset, as_of: datetime) -> List[DailyConsumption]:
        as_of = normalize_timestamp(as_of)
        days = max(self.config.breakdown_days, 1)
        first_day = as_of.date() - timedelta(days=days - 1)
        start = datetime.combine(first_day, time.min, tzinfo=timezone.utc)

        readings = self.store.fetch_readings(asset.asset_id, start, as_of)
        samples, _ = prepare_samples(readings, asset.capacity_liters, self.config)

        by_day: Dict[date, List[LevelSample]] = defaultdict(list)
        for sample in samples:
            by_day[sample.timestamp.date()].append(sample)

        capacity = positive_or_none(asset.capacity_liters)
        breakdown: list[DailyConsumption] = []
        for offset in range(days):
            day = first_day + timedelta(days=offset)
            day_samples = by_day.get(day, [])
            if len(day_samples) < 2:
                breakdown.append(DailyConsumption(day=day, readings=len(day_samples)))
                continue

            oldest, newest = day_samples[0], day_samples[-1]
            percentage = max(0.0, oldest.level_percent - newest.level_percent)
            if oldest.level_liters is not None and newest.level_liters is not None:
                litres: Optional[float] = max(0.0, oldest.level_liters - newest.level_liters)
            elif capacity is not None:
                litres = percentage / 100.0 * capacity
            else:
                litres = None
            breakdown.append(
                DailyConsumption(
                    day=day, litres=litres, percentage=percentage, readings=len(day_samples)
                )
            )
        return breakdown

    def analyze(self, asset: TankAsset, as_of: Optional[datetime] = None) -> TankAnalytics:
        as_of = normalize_timestamp(as_of or datetime.now(timezone.utc))
        consumption_24h = self.consumption_for_window(asset, 1, as_of)
        consumption_7d = self.consumption_for_window(asset, 7, as_of)
        consumption_30d = self.consumption_for_window(asset, 30, as_of)
        breakdown = self.daily_breakdown(asset, as_of)

        litres_series = [day.litres for day in breakdown if day.litres is not None]
        if positive_or_none(asset.capacity_liters) is not None:
            trend_input = litres_series
        else:
            trend_input = [day.percentage for day in breakdown if day.percentage is not None]
        trend = classify_trend(
            trend_input,
            deadband_percent=self.config.trend_deadband_percent,
            min_points=self.config.trend_min_points,
        )

        current_percent, current_litres = self._current_level(asset, as_of)
        forecast = self._forecast(
            current_litres, (consumption_24h, consumption_7d, consumption_30d), as_of.date()
        )

        refills = consumption_30d.refill_events
        daily_average = self._daily_average(litres_series)

        analytics = TankAnalytics(
            asset_id=asset.asset_id,
            name=asset.name,
            as_of=as_of,
            capacity_liters=asset.capacity_liters,
            current_level_percent=current_percent,
            current_level_litres=current_litres,
            refill_threshold_percent=self.threshold_for(asset),
            consumption_24h=consumption_24h,
            consumption_7d=consumption_7d,
            consumption_30d=consumption_30d,
            weekly_litres=_scaled(consumption_7d.daily_consumption_litres, 7),
            weekly_percentage=_scaled(consumption_7d.daily_consumption_percentage, 7),
            monthly_litres=_scaled(consumption_30d.daily_consumption_litres, 30),
            monthly_percentage=_scaled(consumption_30d.daily_consumption_percentage, 30),
            daily_breakdown=breakdown,
            trend=trend,
            forecast=forecast,
            last_refill_at=refills[-1].timestamp if refills else None,
            daily_average_litres=daily_average,
            vs_7d_average_pct=self._vs_average(
                consumption_24h.daily_consumption_litres, daily_average
            ),
            efficiency_score=self._efficiency(consumption_7d.daily_consumption_percentage),
        )
        logger.debug(
            "Analyzed tank",
            extra={"asset_id": asset.asset_id, "refill_count": len(refills)},
        )
        return analytics

    def _current_level(
        self, asset: TankAsset, as_of: datetime
    ) -> tuple[Optional[float], Optional[float]]:
        """Current level from the asset record, else the newest usable reading."""
        capacity = positive_or_none(asset.capacity_liters)
        percent = level_in_range(asset.current_level_percent, self.config)
        litres = finite_or_none(asset.current_level_liters)
        if litres is not None and litres < 0:
            litres = None

        if percent is None or litres is None:
            newest = self._newest_sample(asset, as_of)
            if newest is not None:
                if percent is None:
                    percent = newest.level_percent
                if litres is None:
                    litres = newest.level_liters
        if litres is None and percent is not None and capacity is not None:
            litres = percent / 100.0 * capacity
        if percent is None and litres is not None and capacity is not None:
            percent = litres / capacity * 100.0
        return percent, litres

    def _newest_sample(self, asset: TankAsset, as_of: datetime) -> Optional[LevelSample]:
        lookback = timedelta(days=self.config.level_lookback_days)
        readings = self.store.fetch_readings(asset.asset_id, as_of - lookback, as_of)
        samples, _ = prepare_samples(readings, asset.capacity_liters, self.config)
        return samples[-1] if samples else None

    def _forecast(
        self,
        current_litres: Optional[float],
        results: tuple[ConsumptionResult, ...],
        today: date,
    ) -> Forecast:
        # Prefer the most responsive window that produced a rate at all.
        for result in results:
            if result.daily_consumption_litres is not None:
                return project_forecast(
                    current_litres,
                    result.daily_consumption_litres,
                    today,
                    max_days_remaining=self.config.max_days_remaining,
                    rate_window_days=result.window_days,
                )
        return Forecast()

    @staticmethod
    def _daily_average(litres_series: List[float]) -> Optional[float]:
        positive = [value for value in litres_series if value > 0]
        if not positive:
            return None
        return sum(positive) / len(positive)

    @staticmethod
    def _vs_average(
        litres_24h: Optional[float], daily_average: Optional[float]
    ) -> Optional[float]:
        if not daily_average or not litres_24h or litres_24h <= 0:
            return None
        change = (litres_24h - daily_average) / daily_average * 100.0
        return max(-_VS_AVERAGE_LIMIT, min(_VS_AVERAGE_LIMIT, change))

    def _efficiency(self, weekly_rate_percent: Optional[float]) -> Optional[float]:
        if weekly_rate_percent is None:
            return None
        if weekly_rate_percent <= 0:
            return 100.0
        score = self.config.efficiency_baseline_percent / weekly_rate_percent * 100.0
        return min(_EFFICIENCY_CEILING, score)
