from __future__ import annotations

import datetime as dt
from typing import Dict, List, Sequence

import numpy as np

from cashflow_core.domain.models import BalanceLabel, BalancePoint, BucketTotals, ForecastResult, SeriesPoint

_EMPTY = BucketTotals()


def build_running_balance(
    buckets: Sequence[dt.date],
    starting_balance: int,
    income_index: Dict[dt.date, BucketTotals],
    expense_index: Dict[dt.date, BucketTotals],
) -> ForecastResult:
    """
    Walks the buckets in order and produces the actual (un-forecast) series:
    - income/expenses exclude transfers; transfers are credit + debit transfers.
    - balance[i] = starting_balance + sum of every bucket delta up to i.
    """
    incomes = np.array([income_index.get(b, _EMPTY).non_transfer for b in buckets], dtype=np.int64)
    credits = np.array([income_index.get(b, _EMPTY).transfer for b in buckets], dtype=np.int64)
    expenses = np.array([expense_index.get(b, _EMPTY).non_transfer for b in buckets], dtype=np.int64)
    debits = np.array([expense_index.get(b, _EMPTY).transfer for b in buckets], dtype=np.int64)

    transfers = credits + debits
    balances = int(starting_balance) + np.cumsum(incomes + expenses + transfers)

    income_series: List[SeriesPoint] = []
    expense_series: List[SeriesPoint] = []
    transfer_series: List[SeriesPoint] = []
    balance_series: List[BalancePoint] = []

    for i, bucket in enumerate(buckets):
        income, expense, transfer, balance = int(incomes[i]), int(expenses[i]), int(transfers[i]), int(balances[i])
        income_series.append(SeriesPoint(x=bucket, amount=income))
        expense_series.append(SeriesPoint(x=bucket, amount=expense))
        transfer_series.append(SeriesPoint(x=bucket, amount=transfer))
        balance_series.append(
            BalancePoint(
                x=bucket,
                amount=balance,
                label=BalanceLabel(income=income, expense=expense, transfers=transfer, balance=balance),
            )
        )

    return ForecastResult(
        income=income_series,
        expenses=expense_series,
        transfers=transfer_series,
        balances=balance_series,
        total_income=int(incomes.sum()),
        total_expenses=int(expenses.sum()),
        total_transfers=int(transfers.sum()),
    )
