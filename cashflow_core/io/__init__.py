from cashflow_core.io.budget import StaticBudgetLedger, load_budget  # noqa: F401
from cashflow_core.io.config import load_forecast_config, resolve_today  # noqa: F401
from cashflow_core.io.filters import ConditionFilterCompiler  # noqa: F401
from cashflow_core.io.ledger import LedgerQuerySource, load_ledger  # noqa: F401

__all__ = [
    "load_ledger",
    "LedgerQuerySource",
    "ConditionFilterCompiler",
    "load_budget",
    "StaticBudgetLedger",
    "load_forecast_config",
    "resolve_today",
]
