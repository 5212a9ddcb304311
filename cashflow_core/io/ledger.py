from __future__ import annotations

import datetime as dt
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

from cashflow_core.domain.models import Granularity
from cashflow_core.errors import ConfigError
from cashflow_core.services.sources import NEGATIVE, POSITIVE

REQUIRED_COLUMNS = {"date", "amount"}
_TRUTHY = {"true", "1", "yes", "y"}


def prepare_ledger(df: pd.DataFrame) -> pd.DataFrame:
    """Normalizes a transaction frame: dates, integer minor-unit amounts, transfer and off-budget flags."""
    missing = REQUIRED_COLUMNS - set(df.columns)
    if missing:
        raise ConfigError(f"Missing columns in ledger: {sorted(missing)}")

    df = df.copy()
    df["date"] = pd.to_datetime(df["date"]).dt.date
    df["amount"] = pd.to_numeric(df["amount"]).round().astype("int64")
    if "transfer_account" not in df.columns:
        df["transfer_account"] = None
    df["transfer_account"] = df["transfer_account"].astype(object).where(df["transfer_account"].notna(), None)
    if "offbudget" in df.columns:
        df["offbudget"] = df["offbudget"].astype(str).str.strip().str.lower().isin(_TRUTHY)
    else:
        df["offbudget"] = False
    return df


def load_ledger(csv_path: str | Path) -> pd.DataFrame:
    path = Path(csv_path)
    if not path.exists():
        raise FileNotFoundError(path)
    try:
        frame = pd.read_csv(path)
    except (pd.errors.ParserError, pd.errors.EmptyDataError, UnicodeDecodeError) as exc:
        raise ConfigError(f"Unreadable ledger {path}: {exc}") from exc
    return prepare_ledger(frame)


class LedgerQuerySource:
    """
    In-memory query collaborator over a prepared ledger frame.

    ``query_filter`` is whatever ConditionFilterCompiler produced: a callable
    returning a boolean mask, or None for no filtering.
    """

    def __init__(self, frame: pd.DataFrame):
        self.frame = frame

    def _on_budget(self, query_filter: Any) -> pd.DataFrame:
        df = self.frame[~self.frame["offbudget"]]
        if query_filter is not None:
            df = df[query_filter(df)]
        return df

    @staticmethod
    def _by_sign(df: pd.DataFrame, sign: Optional[str]) -> pd.DataFrame:
        if sign == POSITIVE:
            return df[df["amount"] > 0]
        if sign == NEGATIVE:
            return df[df["amount"] < 0]
        return df

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
        df = self._by_sign(self._on_budget(query_filter), sign)
        if before is not None:
            df = df[df["date"] < before]
        if start is not None:
            df = df[df["date"] >= start]
        if end is not None:
            df = df[df["date"] <= end]
        if exclude_transfers:
            df = df[df["transfer_account"].isna()]
        return int(df["amount"].sum())

    async def grouped(
        self,
        query_filter: Any,
        *,
        start: dt.date,
        end: dt.date,
        granularity: Granularity,
        sign: str,
    ) -> List[Dict[str, Any]]:
        df = self._by_sign(self._on_budget(query_filter), sign)
        df = df[(df["date"] >= start) & (df["date"] <= end)].copy()
        if df.empty:
            return []

        if granularity is Granularity.MONTHLY:
            df["bucket"] = pd.to_datetime(df["date"]).dt.to_period("M").dt.to_timestamp().dt.date
        else:
            df["bucket"] = df["date"]

        grouped = df.groupby(["bucket", "transfer_account"], dropna=False)["amount"].sum()
        rows: List[Dict[str, Any]] = []
        for (bucket, transfer_ref), amount in grouped.items():
            rows.append(
                {
                    "date": bucket,
                    "isTransfer": None if pd.isna(transfer_ref) else str(transfer_ref),
                    "amount": int(amount),
                }
            )
        return rows
