"""Fleet-wide analytics on a bounded worker pool."""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Iterable, List, Optional

from datastore.assets import AssetRegistry, build_default_asset_registry
from datastore.cache import ResultCache
from datastore.readings import build_default_reading_store
from models.records import TrendDirection
from services.consumption import (
    AnalysisConfig,
    ConsumptionCalculator,
    ConsumptionResult,
    RefillEvent,
    detect_refills,
    normalize_timestamp,
)
from services.windows import MultiWindowAggregator, TankAnalytics
from settings import get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FleetFailure:
    asset_id: str
    reason: str


@dataclass
class FleetSummary:
    """Fleet-level reduction of per-tank analytics."""

    tank_count: int = 0
    tanks_with_data: int = 0
    total_consumption_24h_litres: Optional[float] = None
    total_consumption_7d_litres: Optional[float] = None
    total_consumption_30d_litres: Optional[float] = None
    average_consumption_24h_litres: Optional[float] = None
    fleet_trend: TrendDirection = TrendDirection.stable
    most_consumed_asset_id: Optional[str] = None
    most_consumed_litres: Optional[float] = None
    average_efficiency_score: Optional[float] = None


@dataclass
class FleetReport:
    as_of: datetime
    processing_ms: int
    summary: FleetSummary
    tanks: List[TankAnalytics] = field(default_factory=list)
    failures: List[FleetFailure] = field(default_factory=list)


def _add(total: Optional[float], value: Optional[float]) -> Optional[float]:
    if value is None:
        return total
    return value if total is None else total + value


def summarize_fleet(tanks: Iterable[TankAnalytics]) -> FleetSummary:
    summary = FleetSummary()
    efficiency_total = 0.0
    efficiency_count = 0
    increasing = 0
    decreasing = 0

    for tank in tanks:
        summary.tank_count += 1
        litres_24h = tank.consumption_24h.daily_consumption_litres
        if litres_24h is not None:
            summary.tanks_with_data += 1
            summary.total_consumption_24h_litres = _add(
                summary.total_consumption_24h_litres, litres_24h
            )
            if summary.most_consumed_litres is None or litres_24h > summary.most_consumed_litres:
                summary.most_consumed_litres = litres_24h
                summary.most_consumed_asset_id = tank.asset_id

        summary.total_consumption_7d_litres = _add(
            summary.total_consumption_7d_litres, tank.weekly_litres
        )
        summary.total_consumption_30d_litres = _add(
            summary.total_consumption_30d_litres, tank.monthly_litres
        )

        if tank.efficiency_score is not None:
            efficiency_total += tank.efficiency_score
            efficiency_count += 1

        if tank.trend.direction is TrendDirection.increasing:
            increasing += 1
        elif tank.trend.direction is TrendDirection.decreasing:
            decreasing += 1

    if summary.tanks_with_data and summary.total_consumption_24h_litres is not None:
        summary.average_consumption_24h_litres = (
            summary.total_consumption_24h_litres / summary.tanks_with_data
        )
    if efficiency_count:
        summary.average_efficiency_score = efficiency_total / efficiency_count

    if increasing > decreasing * 1.5:
        summary.fleet_trend = TrendDirection.increasing
    elif decreasing > increasing * 1.5:
        summary.fleet_trend = TrendDirection.decreasing

    return summary


class FleetAnalyzer:
    """Coordinates asset lookup, per-tank analytics and fleet reduction."""

    def __init__(
        self,
        registry: AssetRegistry,
        aggregator: MultiWindowAggregator,
        workers: int = 4,
    ) -> None:
        self.registry = registry
        self.aggregator = aggregator
        self.executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="fleet-analytics")

    def analyze_asset(self, asset_id: str, as_of: Optional[datetime] = None) -> TankAnalytics:
        asset = self.registry.get_asset(asset_id)
        return self.aggregator.analyze(asset, as_of)

    def consumption(
        self, asset_id: str, window_days: int, as_of: Optional[datetime] = None
    ) -> ConsumptionResult:
        asset = self.registry.get_asset(asset_id)
        as_of = normalize_timestamp(as_of or datetime.now(timezone.utc))
        return self.aggregator.consumption_for_window(asset, window_days, as_of)

    def refills(
        self, asset_id: str, days: int, as_of: Optional[datetime] = None
    ) -> List[RefillEvent]:
        asset = self.registry.get_asset(asset_id)
        as_of = normalize_timestamp(as_of or datetime.now(timezone.utc))
        readings = self.aggregator.store.fetch_readings(
            asset.asset_id, as_of - timedelta(days=days), as_of
        )
        return detect_refills(
            readings,
            self.aggregator.threshold_for(asset),
            capacity_liters=asset.capacity_liters,
            config=self.aggregator.config,
        )

    def analyze_fleet(
        self,
        asset_ids: Optional[Iterable[str]] = None,
        as_of: Optional[datetime] = None,
    ) -> FleetReport:
        """Analyze every requested asset; one bad tank never aborts the batch."""
        start_time = time.perf_counter()
        as_of = normalize_timestamp(as_of or datetime.now(timezone.utc))
        if asset_ids is None:
            asset_ids = [asset.asset_id for asset in self.registry.list_assets()]

        submitted: list[tuple[str, Future[TankAnalytics]]] = [
            (asset_id, self.executor.submit(self.analyze_asset, asset_id, as_of))
            for asset_id in asset_ids
        ]

        tanks: list[TankAnalytics] = []
        failures: list[FleetFailure] = []
        for asset_id, future in submitted:
            try:
                tanks.append(future.result())
            except Exception as exc:  # noqa: BLE001 - isolate per-asset failures
                logger.warning(
                    "Fleet analytics failed for asset",
                    extra={"asset_id": asset_id, "reason": str(exc)},
                )
                failures.append(FleetFailure(asset_id=asset_id, reason=str(exc)))

        processing_ms = int((time.perf_counter() - start_time) * 1000)
        logger.info(
            "Fleet analytics complete",
            extra={
                "asset_count": len(submitted),
                "failed_count": len(failures),
                "processing_ms": processing_ms,
            },
        )
        return FleetReport(
            as_of=as_of,
            processing_ms=processing_ms,
            summary=summarize_fleet(tanks),
            tanks=tanks,
            failures=failures,
        )

    def shutdown(self) -> None:
        """Clean up executor resources during application shutdown."""
        self.executor.shutdown(wait=False, cancel_futures=True)


@lru_cache
def build_default_fleet_analyzer(
    workers: Optional[int] = None,
) -> FleetAnalyzer:
    """Factory that wires the analyzer with the configured stores."""
    settings = get_settings()
    config = AnalysisConfig(refill_threshold_percent=settings.refill_threshold_percent)
    cache = ResultCache(settings.cache_ttl_seconds) if settings.cache_ttl_seconds > 0 else None
    aggregator = MultiWindowAggregator(
        store=build_default_reading_store(),
        calculator=ConsumptionCalculator(config),
        cache=cache,
    )
    worker_count = workers or settings.analytics_workers
    return FleetAnalyzer(
        registry=build_default_asset_registry(),
        aggregator=aggregator,
        workers=worker_count,
    )
