from __future__ import annotations

import dataclasses
import datetime as dt
import enum
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Union

from cashflow_core.errors import ConfigError, InvalidRangeError

MonthLike = Union[str, dt.date]

CONCISE_AFTER_DAYS = 31 * 3


def to_major(amount: int) -> Decimal:
    """Minor currency units (cents) to a Decimal in major units."""
    return Decimal(int(amount)).scaleb(-2)


def parse_month(value: MonthLike) -> dt.date:
    """Accepts a date or "YYYY-MM[-DD]"; anything else is a ConfigError."""
    if isinstance(value, dt.date):
        return dt.date(value.year, value.month, 1)
    try:
        year, month = (int(x) for x in str(value).split("-")[:2])
        return dt.date(year, month, 1)
    except ValueError as exc:
        raise ConfigError(f"Expected a month as YYYY-MM, got {value!r}") from exc


class Granularity(enum.Enum):
    DAILY = "daily"
    MONTHLY = "monthly"

    @classmethod
    def for_range(cls, date_range: "DateRange") -> "Granularity":
        """Monthly buckets once a range spans more than three 31-day months."""
        if (date_range.end - date_range.start).days > CONCISE_AFTER_DAYS:
            return cls.MONTHLY
        return cls.DAILY


class ConditionsOp(enum.Enum):
    AND = "and"
    OR = "or"


@dataclasses.dataclass(frozen=True)
class DateRange:
    start: dt.date
    end: dt.date

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise InvalidRangeError(f"Range start {self.start} is after end {self.end}")

    @classmethod
    def for_months(cls, start_month: MonthLike, end_month: MonthLike) -> "DateRange":
        """First day of ``start_month`` through the last day of ``end_month``."""
        start = parse_month(start_month)
        end = parse_month(end_month)
        next_month = dt.date(end.year + end.month // 12, end.month % 12 + 1, 1)
        return cls(start=start, end=next_month - dt.timedelta(days=1))


@dataclasses.dataclass(frozen=True)
class Condition:
    field: str
    op: str
    value: Any
    custom_name: Optional[str] = None


@dataclasses.dataclass(frozen=True)
class AggregateRow:
    bucket: dt.date
    is_transfer: bool
    amount: int


@dataclasses.dataclass
class BucketTotals:
    non_transfer: int = 0
    transfer: int = 0


@dataclasses.dataclass(frozen=True)
class SeriesPoint:
    x: dt.date
    amount: int

    @property
    def y(self) -> Decimal:
        return to_major(self.amount)


@dataclasses.dataclass(frozen=True)
class BalanceLabel:
    """What happened in one bucket; formatting is left to the renderer."""

    income: int
    expense: int
    transfers: int
    balance: int
    forecasted: bool = False

    @property
    def change(self) -> int:
        return self.income + self.expense


@dataclasses.dataclass(frozen=True)
class BalancePoint:
    x: dt.date
    amount: int
    label: BalanceLabel

    @property
    def y(self) -> Decimal:
        return to_major(self.amount)


@dataclasses.dataclass(frozen=True)
class Checkpoint:
    date: dt.date
    projected_balance: int
    projected_income: int = 0
    projected_expense: int = 0


@dataclasses.dataclass
class ForecastResult:
    income: List[SeriesPoint]
    expenses: List[SeriesPoint]
    transfers: List[SeriesPoint]
    balances: List[BalancePoint]
    total_income: int = 0
    total_expenses: int = 0
    total_transfers: int = 0
    forecast_applied: bool = False

    @property
    def final_balance(self) -> int:
        return self.balances[-1].amount if self.balances else 0

    @property
    def total_change(self) -> int:
        if not self.balances:
            return 0
        return self.balances[-1].amount - self.balances[0].amount

    def to_dict(self) -> Dict[str, Any]:
        def series(points: Sequence[SeriesPoint]) -> List[Dict[str, Any]]:
            return [{"x": p.x.isoformat(), "y": float(p.y), "amount": p.amount} for p in points]

        return {
            "income": series(self.income),
            "expenses": series(self.expenses),
            "transfers": series(self.transfers),
            "balances": [
                {
                    "x": b.x.isoformat(),
                    "y": float(b.y),
                    "amount": b.amount,
                    "label": dataclasses.asdict(b.label),
                }
                for b in self.balances
            ],
            "total_income": self.total_income,
            "total_expenses": self.total_expenses,
            "total_transfers": self.total_transfers,
            "final_balance": self.final_balance,
            "total_change": self.total_change,
            "forecast_applied": self.forecast_applied,
        }


@dataclasses.dataclass(frozen=True)
class SimpleCashFlow:
    income: int
    expense: int

    @property
    def net(self) -> int:
        return self.income + self.expense


@dataclasses.dataclass(frozen=True)
class ForecastConfig:
    start_month: dt.date
    end_month: dt.date
    granularity: Optional[Granularity] = None
    conditions: Sequence[Condition] = ()
    conditions_op: ConditionsOp = ConditionsOp.AND
    today: Optional[dt.date] = None

    @property
    def date_range(self) -> DateRange:
        return DateRange.for_months(self.start_month, self.end_month)

    @property
    def resolved_granularity(self) -> Granularity:
        """Explicit granularity, or the one the range length implies when unset."""
        return self.granularity or Granularity.for_range(self.date_range)
