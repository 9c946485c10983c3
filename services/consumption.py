"""Refill-aware daily consumption estimation for a single tank.

Readings are sorted, cleaned and split into segments wherever the level jumps
up by at least the refill threshold. A single consumption slope is then fitted
across all segments with a separate intercept per segment, which is the same
as running ordinary least squares with the refill transitions removed. The
readings on either side of a refill stay in play as anchors of their own
segment.

Nothing in this module raises on bad telemetry. Missing data is reported as
``None`` so that "no data" is never confused with "no consumption".
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from models.records import Confidence, TankReading

logger = logging.getLogger(__name__)

_SECONDS_PER_DAY = 86400.0


@dataclass(frozen=True)
class AnalysisConfig:
    """Tunables for the consumption engine."""

    refill_threshold_percent: float = 10.0
    min_level_percent: float = 0.0
    max_level_percent: float = 100.0
    min_nonzero_ratio: float = 0.5
    trend_deadband_percent: float = 10.0
    trend_min_points: int = 4
    max_days_remaining: Optional[float] = 365.0
    efficiency_baseline_percent: float = 2.0
    breakdown_days: int = 7
    level_lookback_days: int = 30


@dataclass(frozen=True)
class LevelSample:
    """A cleaned reading: UTC timestamp plus a usable fill percentage."""

    timestamp: datetime
    level_percent: float
    level_liters: Optional[float] = None


@dataclass(frozen=True)
class RefillEvent:
    timestamp: datetime
    level_before: float
    level_after: float

    @property
    def increase_percent(self) -> float:
        return self.level_after - self.level_before


@dataclass(frozen=True)
class RegressionFit:
    slope: float
    r_squared: float
    points: int


@dataclass(frozen=True)
class ConsumptionResult:
    """Daily consumption estimate for one asset over one window."""

    window_days: int
    daily_consumption_litres: Optional[float] = None
    daily_consumption_percentage: Optional[float] = None
    refill_events_excluded: int = 0
    data_points: int = 0
    readings_skipped: int = 0
    r_squared: Optional[float] = None
    confidence: Confidence = Confidence.low
    refill_events: Tuple[RefillEvent, ...] = field(default_factory=tuple)

    @property
    def has_data(self) -> bool:
        return self.daily_consumption_percentage is not None


def finite_or_none(value: Any) -> Optional[float]:
    """Coerce ``value`` to a finite float, or ``None`` when that is impossible."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def positive_or_none(value: Any) -> Optional[float]:
    number = finite_or_none(value)
    if number is None or number <= 0:
        return None
    return number


def level_in_range(value: Any, config: AnalysisConfig) -> Optional[float]:
    """Return ``value`` as a fill percentage, or ``None`` when it is unusable."""
    percent = finite_or_none(value)
    if percent is None or not (config.min_level_percent <= percent <= config.max_level_percent):
        return None
    return percent


def normalize_timestamp(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def prepare_samples(
    readings: Optional[Iterable[TankReading]],
    capacity_liters: Optional[float] = None,
    config: Optional[AnalysisConfig] = None,
) -> Tuple[List[LevelSample], int]:
    """Clean, convert and sort raw readings.

    Returns the usable samples in ascending time order together with the
    number of readings that had to be skipped.
    """
    config = config or AnalysisConfig()
    capacity = positive_or_none(capacity_liters)

    candidates: list[tuple[datetime, Optional[float], Optional[float], Optional[float]]] = []
    skipped = 0
    for reading in readings or ():
        timestamp = getattr(reading, "timestamp", None)
        if not isinstance(timestamp, datetime):
            skipped += 1
            continue

        percent = level_in_range(getattr(reading, "level_percent", None), config)

        liters = finite_or_none(getattr(reading, "level_liters", None))
        if liters is not None and liters < 0:
            liters = None
        derived = None
        if liters is not None and capacity:
            derived = level_in_range(liters / capacity * 100.0, config)
            if derived is None:
                liters = None

        if percent is None and derived is None:
            skipped += 1
            continue
        candidates.append((normalize_timestamp(timestamp), percent, derived, liters))

    use_derived = _prefer_liters_source(candidates, config) if capacity else False

    samples: list[LevelSample] = []
    for timestamp, percent, derived, liters in candidates:
        level = derived if use_derived else (percent if percent is not None else derived)
        if level is None:
            skipped += 1
            continue
        samples.append(LevelSample(timestamp=timestamp, level_percent=level, level_liters=liters))

    samples.sort(key=lambda sample: (sample.timestamp, sample.level_percent))
    return samples, skipped


def _prefer_liters_source(
    candidates: Sequence[tuple[datetime, Optional[float], Optional[float], Optional[float]]],
    config: AnalysisConfig,
) -> bool:
    # Some providers report 0% for most samples while the litre channel is fine.
    if not candidates:
        return False
    total = len(candidates)
    nonzero_percent = sum(1 for _, percent, _, _ in candidates if percent is not None and percent > 0)
    nonzero_derived = sum(1 for _, _, derived, _ in candidates if derived is not None and derived > 0)
    return (
        nonzero_percent / total < config.min_nonzero_ratio
        and nonzero_derived / total >= config.min_nonzero_ratio
    )


def split_segments(
    samples: Sequence[LevelSample], threshold_percent: float
) -> Tuple[List[List[LevelSample]], List[RefillEvent]]:
    """Split time-ordered samples at every refill boundary."""
    segments: list[list[LevelSample]] = []
    refills: list[RefillEvent] = []
    if not samples:
        return segments, refills

    current = [samples[0]]
    for previous, sample in zip(samples, samples[1:]):
        if sample.level_percent - previous.level_percent >= threshold_percent:
            refills.append(
                RefillEvent(
                    timestamp=sample.timestamp,
                    level_before=previous.level_percent,
                    level_after=sample.level_percent,
                )
            )
            segments.append(current)
            current = [sample]
        else:
            current.append(sample)
    segments.append(current)
    return segments, refills


def fit_segmented_trend(segments: Iterable[Sequence[LevelSample]]) -> Optional[RegressionFit]:
    """Least-squares slope (percent per day) shared by all segments.

    Each segment keeps its own intercept, so level jumps between segments do
    not leak into the slope. Returns ``None`` when no segment has two readings
    at distinct times.
    """
    sxx = sxy = syy = 0.0
    points = 0
    for segment in segments:
        if len(segment) < 2:
            continue
        origin = segment[0].timestamp
        xs = [(sample.timestamp - origin).total_seconds() / _SECONDS_PER_DAY for sample in segment]
        ys = [sample.level_percent for sample in segment]
        mean_x = sum(xs) / len(xs)
        mean_y = sum(ys) / len(ys)
        for x, y in zip(xs, ys):
            dx = x - mean_x
            dy = y - mean_y
            sxx += dx * dx
            sxy += dx * dy
            syy += dy * dy
        points += len(segment)

    if points < 2 or sxx <= 0.0:
        return None

    slope = sxy / sxx
    r_squared = (sxy * sxy) / (sxx * syy) if syy > 0.0 else 1.0
    return RegressionFit(slope=slope, r_squared=r_squared, points=points)


def detect_refills(
    readings: Optional[Iterable[TankReading]],
    threshold_percent: Optional[float] = None,
    capacity_liters: Optional[float] = None,
    config: Optional[AnalysisConfig] = None,
) -> List[RefillEvent]:
    """Return every refill event in ``readings``, oldest first."""
    config = config or AnalysisConfig()
    threshold = resolve_threshold(threshold_percent, config.refill_threshold_percent)
    samples, _ = prepare_samples(readings, capacity_liters, config)
    _, refills = split_segments(samples, threshold)
    return refills


def resolve_threshold(override: Optional[float], default: float) -> float:
    threshold = positive_or_none(override)
    return threshold if threshold is not None else default


def _confidence(points: int, r_squared: float, window_days: int) -> Confidence:
    if points >= 7 and r_squared > 0.7 and window_days >= 7:
        return Confidence.high
    if points >= 5 and r_squared > 0.5:
        return Confidence.medium
    return Confidence.low


class ConsumptionCalculator:
    """Estimates a daily consumption rate that is robust to refills and noise."""

    def __init__(self, config: Optional[AnalysisConfig] = None) -> None:
        self.config = config or AnalysisConfig()

    def calculate(
        self,
        readings: Optional[Iterable[TankReading]],
        window_days: int,
        capacity_liters: Optional[float] = None,
        refill_threshold_percent: Optional[float] = None,
    ) -> ConsumptionResult:
        readings = list(readings or ())
        asset_id = getattr(readings[0], "asset_id", None) if readings else None
        threshold = resolve_threshold(
            refill_threshold_percent, self.config.refill_threshold_percent
        )

        samples, skipped = prepare_samples(readings, capacity_liters, self.config)
        if skipped:
            logger.warning(
                "Skipping %d malformed readings",
                skipped,
                extra={"asset_id": asset_id, "window_days": window_days, "reason": "unusable level"},
            )

        if len(samples) < 2:
            return ConsumptionResult(
                window_days=window_days,
                data_points=len(samples),
                readings_skipped=skipped,
            )

        segments, refills = split_segments(samples, threshold)
        fit = fit_segmented_trend(segments)
        if fit is None:
            return ConsumptionResult(
                window_days=window_days,
                refill_events_excluded=len(refills),
                data_points=len(samples),
                readings_skipped=skipped,
                refill_events=tuple(refills),
            )

        # A rising level below the refill threshold is jitter, not negative use.
        rate_percent = max(0.0, -fit.slope)
        capacity = positive_or_none(capacity_liters)
        rate_litres = rate_percent / 100.0 * capacity if capacity is not None else None

        logger.debug(
            "Computed consumption rate",
            extra={
                "asset_id": asset_id,
                "window_days": window_days,
                "data_points": len(samples),
                "refill_count": len(refills),
            },
        )
        return ConsumptionResult(
            window_days=window_days,
            daily_consumption_litres=rate_litres,
            daily_consumption_percentage=rate_percent,
            refill_events_excluded=len(refills),
            data_points=len(samples),
            readings_skipped=skipped,
            r_squared=fit.r_squared,
            confidence=_confidence(len(samples), fit.r_squared, window_days),
            refill_events=tuple(refills),
        )
