from __future__ import annotations

import dataclasses
import datetime as dt
from decimal import Decimal
from typing import List, Optional

from cashflow_core.domain.models import ForecastResult, Granularity
from cashflow_core.services.buckets import month_start

ZERO = Decimal("0")


@dataclasses.dataclass(frozen=True)
class ChartRow:
    date: dt.date
    income: Decimal
    expenses: Decimal
    income_forecast: Decimal
    expenses_forecast: Decimal
    transfers: Decimal
    balance: Decimal
    forecast_balance: Optional[Decimal]


def chart_rows(result: ForecastResult, today: dt.date, granularity: Granularity) -> List[ChartRow]:
    """
    Splits each bucket into actual and forecast columns for a renderer.
    Actual income/expenses stop after today; forecast columns start at today.
    The forecast balance line also starts at today, or at the current month
    bucket in monthly mode.
    """
    income = {p.x: p.y for p in result.income}
    expenses = {p.x: p.y for p in result.expenses}
    transfers = {p.x: p.y for p in result.transfers}
    current_month = month_start(today)

    rows: List[ChartRow] = []
    for point in result.balances:
        x = point.x
        future = x > today
        on_or_after = x >= today or (granularity is Granularity.MONTHLY and x == current_month)
        inc = income.get(x, ZERO)
        exp = expenses.get(x, ZERO)
        rows.append(
            ChartRow(
                date=x,
                income=ZERO if future else inc,
                expenses=ZERO if future else exp,
                income_forecast=inc if x >= today else ZERO,
                expenses_forecast=exp if x >= today else ZERO,
                transfers=transfers.get(x, ZERO),
                balance=point.y,
                forecast_balance=point.y if on_or_after else None,
            )
        )
    return rows
