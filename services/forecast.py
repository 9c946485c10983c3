"""Linear days-remaining projection."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from services.consumption import finite_or_none

LINEAR_ESTIMATE = "linear_estimate"


@dataclass(frozen=True)
class Forecast:
    """Projected time to empty. Always an estimate, never a guarantee."""

    days_remaining: Optional[float] = None
    estimated_refill_date: Optional[str] = None
    rate_window_days: Optional[int] = None
    capped: bool = False
    basis: str = LINEAR_ESTIMATE


def project_forecast(
    current_level_litres: Optional[float],
    daily_consumption_litres: Optional[float],
    today: date,
    max_days_remaining: Optional[float] = 365.0,
    rate_window_days: Optional[int] = None,
) -> Forecast:
    current = finite_or_none(current_level_litres)
    rate = finite_or_none(daily_consumption_litres)
    if current is None or rate is None or rate <= 0:
        return Forecast()

    days_remaining = max(current, 0.0) / rate
    capped = False
    if max_days_remaining is not None and days_remaining > max_days_remaining:
        days_remaining = max_days_remaining
        capped = True

    # Half days round up, not to even.
    whole_days = math.floor(days_remaining + 0.5)
    try:
        refill_date: Optional[str] = (today + timedelta(days=whole_days)).isoformat()
    except OverflowError:
        refill_date = None

    return Forecast(
        days_remaining=days_remaining,
        estimated_refill_date=refill_date,
        rate_window_days=rate_window_days,
        capped=capped,
    )
