"""Unit tests for the two-window trend classifier."""

from __future__ import annotations

import pytest

from models.records import TrendDirection
from services.trend import classify_trend


def _mirror(series: list[float]) -> list[float]:
    """Negate every step of ``series`` while keeping its first value."""
    origin = series[0]
    return [2 * origin - value for value in series]


def test_fewer_than_four_points_is_stable_without_a_change_figure() -> None:
    result = classify_trend([10.0, 50.0, 90.0])

    assert result.direction is TrendDirection.stable
    assert result.indicator == "→"
    assert result.change_percent is None


def test_large_drop_is_decreasing() -> None:
    result = classify_trend([50, 48, 46, 44, 30, 28, 26])

    assert result.direction is TrendDirection.decreasing
    assert result.indicator == "↓"
    assert result.change_percent == pytest.approx((32 - 48) / 48 * 100)


def test_drop_inside_deadband_is_stable() -> None:
    result = classify_trend([50, 50, 50, 48, 47, 46, 46])

    assert result.direction is TrendDirection.stable
    assert result.change_percent == pytest.approx(-6.5)


def test_drop_just_outside_deadband_is_decreasing() -> None:
    result = classify_trend([50, 50, 50, 45, 44, 44, 44])

    assert result.direction is TrendDirection.decreasing


@pytest.mark.parametrize(
    ("second_half_value", "expected"),
    [
        (10.5, TrendDirection.stable),
        (10.9, TrendDirection.stable),
        (11.2, TrendDirection.increasing),
    ],
)
def test_rise_either_side_of_deadband(second_half_value: float, expected: TrendDirection) -> None:
    series = [10.0, 10.0, 10.0] + [second_half_value] * 4

    assert classify_trend(series).direction is expected


def test_zero_first_half_mean_uses_unit_denominator() -> None:
    result = classify_trend([0.0, 0.0, 5.0, 5.0])

    assert result.direction is TrendDirection.increasing
    assert result.change_percent == pytest.approx(500.0)


@pytest.mark.parametrize(
    "series",
    [
        [50.0, 48.0, 46.0, 44.0, 30.0, 28.0, 26.0],
        [10.0, 12.0, 14.0, 16.0, 18.0, 20.0, 22.0],
        [20.0, 20.0, 21.0, 20.0, 20.0, 19.0, 20.0],
    ],
)
def test_negating_steps_flips_direction_and_keeps_stable(series: list[float]) -> None:
    flipped = {
        TrendDirection.increasing: TrendDirection.decreasing,
        TrendDirection.decreasing: TrendDirection.increasing,
        TrendDirection.stable: TrendDirection.stable,
    }

    original = classify_trend(series).direction
    mirrored = classify_trend(_mirror(series)).direction

    assert mirrored is flipped[original]


def test_missing_values_are_ignored() -> None:
    result = classify_trend([50, None, 48, 46, None, 44, 30, 28, 26])

    assert result.direction is TrendDirection.decreasing


def test_custom_deadband() -> None:
    series = [50, 50, 50, 48, 47, 46, 46]

    assert classify_trend(series, deadband_percent=5.0).direction is TrendDirection.decreasing
