from __future__ import annotations

import asyncio
import datetime as dt
import inspect
import logging
from typing import Any, AsyncIterable, Awaitable, List, Optional, Sequence, Tuple

from cashflow_core.domain.models import (
    Checkpoint,
    Condition,
    ConditionsOp,
    DateRange,
    ForecastResult,
    Granularity,
    SimpleCashFlow,
)
from cashflow_core.errors import DataSourceError
from cashflow_core.services import aggregator, balances, buckets, overlay
from cashflow_core.services.sources import (
    METRIC_BUDGET_INCOME,
    METRIC_BUDGETED,
    METRIC_SAVED,
    NEGATIVE,
    POSITIVE,
    BudgetLedger,
    FilterCompiler,
    QuerySource,
    Sink,
)

logger = logging.getLogger(__name__)


async def _gather(*aws: Awaitable[Any]) -> List[Any]:
    """
    Fan-out/fan-in barrier. Any failure cancels the siblings and surfaces as
    DataSourceError; cancellation of the caller propagates unchanged.
    """
    tasks = [asyncio.ensure_future(a) for a in aws]
    try:
        return list(await asyncio.gather(*tasks))
    except asyncio.CancelledError:
        raise
    except Exception as exc:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.error("Cash flow data source failed: %s", exc)
        raise DataSourceError(str(exc) or type(exc).__name__) from exc


async def _deliver(sink: Sink, result: ForecastResult) -> None:
    outcome = sink(result)
    if inspect.isawaitable(outcome):
        await outcome


class CashFlowForecaster:
    """
    Runs the cash flow pipeline against the filter, query and budget collaborators.

    Every call builds its own checkpoints and series; instances hold only the
    collaborators, so concurrent calls with different parameters are isolated.
    """

    def __init__(self, filters: FilterCompiler, queries: QuerySource, budget: Optional[BudgetLedger] = None):
        self.filters = filters
        self.queries = queries
        self.budget = budget

    async def _compile(self, conditions: Sequence[Condition], op: ConditionsOp) -> Any:
        active = [c for c in conditions if not c.custom_name]
        try:
            return await self.filters.compile(active, op)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("Filter compilation failed: %s", exc)
            raise DataSourceError(f"Could not compile filter: {exc}") from exc

    async def _metric(self, period: str, metric: str) -> int:
        payload = await self.budget.get(period, metric)
        return int(payload["value"] or 0)

    async def _checkpoints(
        self, date_range: DateRange, granularity: Granularity, today: dt.date
    ) -> Tuple[Checkpoint, Optional[Checkpoint]]:
        """
        Budget checkpoints for today's month and, when the range ends in a later month,
        the month after it. The second checkpoint reads the budget sheet of the month
        after today's, not the sheet of the range's end month.
        """
        current_month = buckets.month_start(today)
        next_month = buckets.add_months(current_month, 1)
        with_next = buckets.month_start(date_range.end) != current_month

        if granularity is Granularity.MONTHLY:
            current_date, next_date = current_month, next_month
        else:
            current_date, next_date = buckets.month_end(current_month), buckets.month_end(next_month)

        periods = [buckets.period_key(current_month)]
        if with_next:
            periods.append(buckets.period_key(next_month))
        lookups = [
            self._metric(period, metric)
            for period in periods
            for metric in (METRIC_SAVED, METRIC_BUDGET_INCOME, METRIC_BUDGETED)
        ]
        values = await asyncio.gather(*lookups)

        saved, income, budgeted = values[0:3]
        current = Checkpoint(current_date, projected_balance=saved, projected_income=income, projected_expense=-budgeted)
        if not with_next:
            return current, None
        saved2, income2, budgeted2 = values[3:6]
        following = Checkpoint(
            next_date,
            projected_balance=saved + saved2,
            projected_income=income2,
            projected_expense=-budgeted2,
        )
        return current, following

    async def compute(
        self,
        date_range: DateRange,
        granularity: Granularity,
        conditions: Sequence[Condition] = (),
        conditions_op: ConditionsOp = ConditionsOp.AND,
        today: Optional[dt.date] = None,
    ) -> ForecastResult:
        today = today or dt.date.today()
        query_filter = await self._compile(conditions, conditions_op)

        forecastable = self.budget is not None and buckets.month_start(date_range.end) >= buckets.month_start(today)
        reads: List[Awaitable[Any]] = [
            self.queries.sum_amount(query_filter, before=date_range.start),
            self.queries.grouped(
                query_filter, start=date_range.start, end=date_range.end, granularity=granularity, sign=POSITIVE
            ),
            self.queries.grouped(
                query_filter, start=date_range.start, end=date_range.end, granularity=granularity, sign=NEGATIVE
            ),
        ]
        if forecastable:
            reads.append(self._checkpoints(date_range, granularity, today))
        logger.debug(
            "Fetching cash flow %s..%s (%s), %d reads", date_range.start, date_range.end, granularity.value, len(reads)
        )
        data = await _gather(*reads)

        starting_balance, income_rows, expense_rows = data[0], data[1], data[2]
        keys = buckets.bucket_sequence(date_range.start, date_range.end, granularity)
        result = balances.build_running_balance(
            keys,
            int(starting_balance or 0),
            aggregator.index_cash_flow(income_rows),
            aggregator.index_cash_flow(expense_rows),
        )
        if forecastable:
            current, following = data[3]
            result = overlay.apply_forecast(result, granularity, today, current, following)
        return result

    async def run(
        self,
        date_range: DateRange,
        granularity: Granularity,
        conditions: Sequence[Condition] = (),
        conditions_op: ConditionsOp = ConditionsOp.AND,
        sink: Optional[Sink] = None,
        today: Optional[dt.date] = None,
    ) -> ForecastResult:
        """Computes the full result and hands it to ``sink``; nothing is delivered on failure."""
        result = await self.compute(date_range, granularity, conditions, conditions_op, today=today)
        if sink is not None:
            await _deliver(sink, result)
        return result

    async def watch(
        self,
        changes: AsyncIterable[Any],
        date_range: DateRange,
        granularity: Granularity,
        conditions: Sequence[Condition] = (),
        conditions_op: ConditionsOp = ConditionsOp.AND,
        sink: Optional[Sink] = None,
        today: Optional[dt.date] = None,
    ) -> None:
        """Emits once, then re-emits a complete result for every change notification."""
        await self.run(date_range, granularity, conditions, conditions_op, sink=sink, today=today)
        async for _ in changes:
            await self.run(date_range, granularity, conditions, conditions_op, sink=sink, today=today)

    async def simple(
        self,
        date_range: DateRange,
        conditions: Sequence[Condition] = (),
        conditions_op: ConditionsOp = ConditionsOp.AND,
        today: Optional[dt.date] = None,
    ) -> SimpleCashFlow:
        """Income and expense totals without transfers, capped at today."""
        today = today or dt.date.today()
        query_filter = await self._compile(conditions, conditions_op)
        end = min(date_range.end, today)
        income, expense = await _gather(
            self.queries.sum_amount(
                query_filter, start=date_range.start, end=end, sign=POSITIVE, exclude_transfers=True
            ),
            self.queries.sum_amount(
                query_filter, start=date_range.start, end=end, sign=NEGATIVE, exclude_transfers=True
            ),
        )
        return SimpleCashFlow(income=int(income or 0), expense=int(expense or 0))
