from __future__ import annotations

import datetime as dt
from typing import Any, Awaitable, Callable, Mapping, Protocol, Sequence, Union

from cashflow_core.domain.models import AggregateRow, Condition, ConditionsOp, ForecastResult, Granularity

METRIC_SAVED = "total-saved"
METRIC_BUDGET_INCOME = "total-budget-income"
METRIC_BUDGETED = "total-budgeted"

POSITIVE = "positive"
NEGATIVE = "negative"

Sink = Callable[[ForecastResult], Union[None, Awaitable[None]]]


class FilterCompiler(Protocol):
    async def compile(self, conditions: Sequence[Condition], op: ConditionsOp) -> Any:
        """Turns rule conditions into an opaque filter understood by the query source."""


class QuerySource(Protocol):
    """
    Transaction queries. Off-budget accounts are always excluded.
    """

    async def sum_amount(
        self,
        query_filter: Any,
        *,
        start: dt.date | None = None,
        end: dt.date | None = None,
        before: dt.date | None = None,
        sign: str | None = None,
        exclude_transfers: bool = False,
    ) -> int:
        ...

    async def grouped(
        self,
        query_filter: Any,
        *,
        start: dt.date,
        end: dt.date,
        granularity: Granularity,
        sign: str,
    ) -> Sequence[Union[AggregateRow, Mapping[str, Any]]]:
        """Rows summed per (bucket, transfer account) for amounts of the given sign."""


class BudgetLedger(Protocol):
    async def get(self, period_key: str, metric: str) -> Mapping[str, Any]:
        """Returns ``{"value": int}`` in minor units."""
