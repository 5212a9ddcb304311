from cashflow_core.services.aggregator import index_cash_flow  # noqa: F401
from cashflow_core.services.balances import build_running_balance  # noqa: F401
from cashflow_core.services.buckets import bucket_sequence  # noqa: F401
from cashflow_core.services.chart import chart_rows  # noqa: F401
from cashflow_core.services.orchestrator import CashFlowForecaster  # noqa: F401
from cashflow_core.services.overlay import apply_forecast  # noqa: F401

__all__ = [
    "bucket_sequence",
    "index_cash_flow",
    "build_running_balance",
    "apply_forecast",
    "chart_rows",
    "CashFlowForecaster",
]
