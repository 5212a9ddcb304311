from __future__ import annotations

import datetime as dt
import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

from cashflow_core.domain.models import Condition, ConditionsOp, ForecastConfig, Granularity, parse_month
from cashflow_core.errors import ConfigError

TODAY_ENV = "CASHFLOW_TODAY"
AUTO_GRANULARITY = "auto"


def load_forecast_config(path: str | Path) -> ForecastConfig:
    try:
        data = _read_json(path)
        return ForecastConfig(
            start_month=parse_month(data["start_month"]),
            end_month=parse_month(data.get("end_month", data["start_month"])),
            granularity=_parse_granularity(data.get("granularity")),
            conditions=tuple(
                Condition(
                    field=c["field"],
                    op=c["op"],
                    value=c.get("value"),
                    custom_name=c.get("customName"),
                )
                for c in data.get("conditions", []) or []
            ),
            conditions_op=ConditionsOp(str(data.get("conditions_op", "and")).lower()),
            today=_parse_date(data.get("today")),
        )
    except (OSError, KeyError, TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid forecast config {path}: {exc}") from exc


def resolve_today(explicit: Optional[dt.date] = None) -> dt.date:
    """Explicit date, else $CASHFLOW_TODAY, else the system date."""
    if explicit is not None:
        return explicit
    env = os.environ.get(TODAY_ENV)
    if env:
        try:
            return dt.date.fromisoformat(env)
        except ValueError as exc:
            raise ConfigError(f"{TODAY_ENV} must be an ISO date, got {env!r}") from exc
    return dt.date.today()


def _parse_granularity(raw: Any) -> Optional[Granularity]:
    """"auto" (or nothing) leaves the choice to the range length."""
    value = str(raw or AUTO_GRANULARITY).lower()
    return None if value == AUTO_GRANULARITY else Granularity(value)


def _parse_date(raw: Any) -> Optional[dt.date]:
    if raw in (None, ""):
        return None
    return dt.date.fromisoformat(str(raw))


def _read_json(path: str | Path) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)
