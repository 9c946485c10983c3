"""Two-window trend classification for short daily consumption series."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from models.records import TrendDirection
from services.consumption import finite_or_none

_INDICATORS = {
    TrendDirection.increasing: "↑",
    TrendDirection.decreasing: "↓",
    TrendDirection.stable: "→",
}


@dataclass(frozen=True)
class TrendResult:
    direction: TrendDirection = TrendDirection.stable
    change_percent: Optional[float] = None

    @property
    def indicator(self) -> str:
        return _INDICATORS[self.direction]


def classify_trend(
    values: Iterable[Optional[float]],
    deadband_percent: float = 10.0,
    min_points: int = 4,
) -> TrendResult:
    """Compare the mean of the second half of ``values`` with the first half.

    Fewer than ``min_points`` values is reported as stable with no change
    figure. Changes inside the deadband are stable so the label does not flap
    on noisy data.
    """
    series = [number for number in (finite_or_none(v) for v in values) if number is not None]
    if len(series) < min_points:
        return TrendResult()

    midpoint = len(series) // 2
    first_half = series[:midpoint]
    second_half = series[midpoint:]
    first_mean = sum(first_half) / len(first_half)
    second_mean = sum(second_half) / len(second_half)

    change = (second_mean - first_mean) / (first_mean or 1.0) * 100.0

    if abs(change) < deadband_percent:
        return TrendResult(direction=TrendDirection.stable, change_percent=change)
    if change > 0:
        return TrendResult(direction=TrendDirection.increasing, change_percent=change)
    return TrendResult(direction=TrendDirection.decreasing, change_percent=change)
