from __future__ import annotations


class CashFlowError(Exception):
    """Base class for every error raised by cashflow_core."""


class InvalidRangeError(CashFlowError, ValueError):
    """A date range whose start falls after its end."""


class DataSourceError(CashFlowError):
    """A filter, query or budget collaborator failed."""


class MissingAnchorError(CashFlowError):
    """The current-period checkpoint has no bucket in the balance series."""


class ConfigError(CashFlowError, ValueError):
    """Malformed configuration, ledger or budget input."""
