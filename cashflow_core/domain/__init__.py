from cashflow_core.domain.models import (  # noqa: F401
    AggregateRow,
    BalanceLabel,
    BalancePoint,
    BucketTotals,
    Checkpoint,
    Condition,
    ConditionsOp,
    DateRange,
    ForecastConfig,
    ForecastResult,
    Granularity,
    SeriesPoint,
    SimpleCashFlow,
)

__all__ = [
    "AggregateRow",
    "BalanceLabel",
    "BalancePoint",
    "BucketTotals",
    "Checkpoint",
    "Condition",
    "ConditionsOp",
    "DateRange",
    "ForecastConfig",
    "ForecastResult",
    "Granularity",
    "SeriesPoint",
    "SimpleCashFlow",
]
