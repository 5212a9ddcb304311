from __future__ import annotations

import datetime as dt
from typing import Any, Dict, Iterable, List, Mapping, Union

import pandas as pd

from cashflow_core.domain.models import AggregateRow, BucketTotals

RawRow = Union[AggregateRow, Mapping[str, Any]]


def to_bucket_key(raw: Any) -> dt.date:
    """Accepts dates, datetimes, "YYYY-MM-DD" and "YYYY-MM" (month bucket)."""
    if isinstance(raw, dt.datetime):
        return raw.date()
    if isinstance(raw, dt.date):
        return raw
    text = str(raw)
    if len(text) == 7:
        text = f"{text}-01"
    return dt.date.fromisoformat(text[:10])


def normalize_row(row: RawRow) -> AggregateRow:
    """
    Raw query rows carry the transfer account reference (``isTransfer`` or
    ``transfer_ref``); any reference other than None, NaN or False marks the row as a
    transfer.
    """
    if isinstance(row, AggregateRow):
        return row
    if "isTransfer" in row:
        ref = row["isTransfer"]
    else:
        ref = row.get("transfer_ref")
    is_transfer = ref is not False and not pd.isna(ref)
    key = row["date"] if "date" in row else row["bucket"]
    return AggregateRow(bucket=to_bucket_key(key), is_transfer=is_transfer, amount=int(row["amount"]))


def index_cash_flow(rows: Iterable[RawRow]) -> Dict[dt.date, BucketTotals]:
    """Index signed amounts by bucket, split into transfer and non-transfer totals."""
    normalized: List[AggregateRow] = [normalize_row(r) for r in rows]
    if not normalized:
        return {}

    df = pd.DataFrame(
        {
            "bucket": [r.bucket for r in normalized],
            "is_transfer": [r.is_transfer for r in normalized],
            "amount": [r.amount for r in normalized],
        }
    )
    grouped = df.groupby(["bucket", "is_transfer"])["amount"].sum()

    index: Dict[dt.date, BucketTotals] = {}
    for (bucket, is_transfer), amount in grouped.items():
        totals = index.setdefault(bucket, BucketTotals())
        if is_transfer:
            totals.transfer += int(amount)
        else:
            totals.non_transfer += int(amount)
    return index
