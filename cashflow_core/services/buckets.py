from __future__ import annotations

import datetime as dt
from typing import List

import pandas as pd

from cashflow_core.domain.models import Granularity
from cashflow_core.errors import InvalidRangeError


def month_start(date: dt.date) -> dt.date:
    return dt.date(date.year, date.month, 1)


def add_months(date: dt.date, months: int) -> dt.date:
    return (pd.Period(month_start(date), freq="M") + months).to_timestamp().date()


def month_end(date: dt.date) -> dt.date:
    return add_months(date, 1) - dt.timedelta(days=1)


def days_between(start: dt.date, end: dt.date) -> int:
    return (end - start).days


def period_key(date: dt.date) -> str:
    """Budget sheet key for the month containing ``date`` ("YYYY-MM")."""
    return f"{date.year:04d}-{date.month:02d}"


def bucket_sequence(start: dt.date, end: dt.date, granularity: Granularity) -> List[dt.date]:
    """
    Ordered, gap-free bucket keys covering ``start``..``end`` inclusive.
    Monthly buckets are keyed by the first day of each month.
    """
    if start > end:
        raise InvalidRangeError(f"Range start {start} is after end {end}")

    if granularity is Granularity.MONTHLY:
        periods = pd.period_range(start=pd.Period(start, freq="M"), end=pd.Period(end, freq="M"), freq="M")
        return [p.to_timestamp().date() for p in periods]

    return [ts.date() for ts in pd.date_range(start=start, end=end, freq="D")]
