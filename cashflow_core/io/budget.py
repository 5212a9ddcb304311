from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, Mapping

from cashflow_core.errors import ConfigError


class StaticBudgetLedger:
    """Budget totals keyed by month ("YYYY-MM") then metric name; absent metrics are zero."""

    def __init__(self, sheets: Mapping[str, Mapping[str, Any]]):
        self.sheets = {str(k): dict(v) for k, v in sheets.items()}

    async def get(self, period_key: str, metric: str) -> Dict[str, int]:
        value = self.sheets.get(period_key, {}).get(metric, 0)
        return {"value": int(value or 0)}


def load_budget(path: str | Path) -> StaticBudgetLedger:
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigError(f"Could not read budget file {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError("Budget file must map months to metric totals")
    return StaticBudgetLedger(data)
