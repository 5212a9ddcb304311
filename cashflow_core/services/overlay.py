from __future__ import annotations

import bisect
import dataclasses
import datetime as dt
import logging
from typing import List, Optional, Sequence

from cashflow_core.domain.models import BalanceLabel, BalancePoint, Checkpoint, ForecastResult, Granularity, SeriesPoint
from cashflow_core.errors import MissingAnchorError
from cashflow_core.services.buckets import days_between

logger = logging.getLogger(__name__)


def round_half_away(numerator: int, denominator: int) -> int:
    """Exact ``round(numerator / denominator)``, ties away from zero. ``denominator`` > 0."""
    sign = -1 if numerator < 0 else 1
    return sign * ((2 * abs(numerator) + denominator) // (2 * denominator))


def _find(balances: Sequence[BalancePoint], date: dt.date) -> Optional[int]:
    for idx, point in enumerate(balances):
        if point.x == date:
            return idx
    return None


def _locate_anchor(balances: Sequence[BalancePoint], checkpoint: Checkpoint) -> int:
    idx = _find(balances, checkpoint.date)
    if idx is None:
        raise MissingAnchorError(f"No bucket for checkpoint date {checkpoint.date.isoformat()}")
    return idx


def _interpolate(
    balances: List[BalancePoint],
    lo: int,
    hi: int,
    start_amount: int,
    end_amount: int,
    today: dt.date,
) -> None:
    """Linearly re-derives the points strictly between ``lo`` and ``hi``, never touching ``today`` or earlier."""
    origin = balances[lo].x
    span = days_between(origin, balances[hi].x)
    if span <= 0:
        return
    diff = end_amount - start_amount
    for idx in range(lo + 1, hi):
        point = balances[idx]
        if point.x <= today:
            continue
        amount = start_amount + round_half_away(diff * days_between(origin, point.x), span)
        balances[idx] = BalancePoint(
            x=point.x,
            amount=amount,
            label=dataclasses.replace(point.label, balance=amount, forecasted=True),
        )


def _checkpoint_point(x: dt.date, checkpoint: Checkpoint) -> BalancePoint:
    return BalancePoint(
        x=x,
        amount=checkpoint.projected_balance,
        label=BalanceLabel(
            income=checkpoint.projected_income,
            expense=checkpoint.projected_expense,
            transfers=0,
            balance=checkpoint.projected_balance,
            forecasted=True,
        ),
    )


def merge_point(series: Sequence[SeriesPoint], point: SeriesPoint) -> List[SeriesPoint]:
    """Overwrites the point sharing ``point.x`` or inserts it in date order."""
    merged = list(series)
    for idx, existing in enumerate(merged):
        if existing.x == point.x:
            merged[idx] = point
            return merged
    keys = [p.x for p in merged]
    merged.insert(bisect.bisect_right(keys, point.x), point)
    return merged


def apply_forecast(
    result: ForecastResult,
    granularity: Granularity,
    today: dt.date,
    current: Checkpoint,
    next_: Optional[Checkpoint] = None,
) -> ForecastResult:
    """
    Blends budget checkpoints into an actual balance series and returns a new result.

    - Checkpoint buckets take the projected balance outright.
    - Daily: buckets after ``today`` and before the current checkpoint are
      interpolated from the balance at ``today``; buckets between the two
      checkpoints are interpolated between their projected balances.
    - Monthly: checkpoint replacement only.
    - Projected income/expense land on the income/expense series at each
      checkpoint bucket.
    If the current checkpoint has no bucket the input is returned unchanged.
    """
    try:
        current_idx = _locate_anchor(result.balances, current)
    except MissingAnchorError as exc:
        logger.warning("Forecast overlay skipped: %s", exc)
        return result

    balances = list(result.balances)
    next_idx = _find(balances, next_.date) if next_ is not None else None
    if next_ is not None and next_idx is None:
        logger.debug("Next-period checkpoint %s is outside the series", next_.date)

    if granularity is Granularity.DAILY:
        today_idx = _find(balances, today)
        if today_idx is None:
            logger.debug("Today (%s) is outside the series; current period not interpolated", today)
        elif today_idx < current_idx:
            _interpolate(balances, today_idx, current_idx, balances[today_idx].amount, current.projected_balance, today)
        if next_idx is not None and current_idx < next_idx:
            _interpolate(balances, current_idx, next_idx, current.projected_balance, next_.projected_balance, today)

    income = list(result.income)
    expenses = list(result.expenses)
    for idx, checkpoint in ((current_idx, current), (next_idx, next_)):
        if idx is None or checkpoint is None:
            continue
        x = balances[idx].x
        balances[idx] = _checkpoint_point(x, checkpoint)
        income = merge_point(income, SeriesPoint(x=x, amount=checkpoint.projected_income))
        expenses = merge_point(expenses, SeriesPoint(x=x, amount=checkpoint.projected_expense))

    return dataclasses.replace(
        result,
        income=income,
        expenses=expenses,
        balances=balances,
        forecast_applied=True,
    )
