from __future__ import annotations

import datetime as dt
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

import pandas as pd

from cashflow_core.domain.models import Condition, ConditionsOp
from cashflow_core.errors import ConfigError


def _text(series: pd.Series) -> pd.Series:
    return series.astype(str).str.lower()


def _values(value: Any) -> List[Any]:
    if isinstance(value, (list, tuple, set)):
        return list(value)
    return [value]


OPERATORS: Dict[str, Callable[[pd.Series, Any], pd.Series]] = {
    "is": lambda s, v: s == v,
    "isNot": lambda s, v: s != v,
    "gt": lambda s, v: s > v,
    "gte": lambda s, v: s >= v,
    "lt": lambda s, v: s < v,
    "lte": lambda s, v: s <= v,
    "contains": lambda s, v: _text(s).str.contains(str(v).lower(), regex=False),
    "doesNotContain": lambda s, v: ~_text(s).str.contains(str(v).lower(), regex=False),
    "oneOf": lambda s, v: s.isin(_values(v)),
    "notOneOf": lambda s, v: ~s.isin(_values(v)),
}


def _coerce(field: str, value: Any) -> Any:
    if field == "date" and isinstance(value, str):
        return dt.date.fromisoformat(value)
    if field == "date" and isinstance(value, (list, tuple)):
        return [dt.date.fromisoformat(v) if isinstance(v, str) else v for v in value]
    return value


class LedgerFilter:
    """Boolean mask over a ledger frame, combining conditions with AND or OR."""

    def __init__(self, conditions: Sequence[Condition], op: ConditionsOp):
        self.conditions = list(conditions)
        self.op = op

    def __call__(self, df: pd.DataFrame) -> pd.Series:
        if not self.conditions:
            return pd.Series(True, index=df.index)

        masks = []
        for cond in self.conditions:
            if cond.field not in df.columns:
                raise ConfigError(f"Unknown filter field: {cond.field}")
            masks.append(OPERATORS[cond.op](df[cond.field], _coerce(cond.field, cond.value)).fillna(False))

        combined = masks[0]
        for mask in masks[1:]:
            combined = (combined | mask) if self.op is ConditionsOp.OR else (combined & mask)
        return combined.astype(bool)


class ConditionFilterCompiler:
    """Compiles rule conditions into a LedgerFilter, validating operators and (optionally) fields."""

    def __init__(self, fields: Optional[Iterable[str]] = None):
        self.fields = set(fields) if fields is not None else None

    async def compile(self, conditions: Sequence[Condition], op: ConditionsOp) -> LedgerFilter:
        for cond in conditions:
            if cond.op not in OPERATORS:
                raise ConfigError(f"Unsupported filter operator: {cond.op}")
            if self.fields is not None and cond.field not in self.fields:
                raise ConfigError(f"Unknown filter field: {cond.field}")
        return LedgerFilter(conditions, op)
