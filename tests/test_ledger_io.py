import asyncio
import datetime as dt
import json
from pathlib import Path

import pandas as pd
import pytest

from cashflow_core.domain.models import Condition, ConditionsOp, DateRange, Granularity
from cashflow_core.errors import ConfigError, DataSourceError
from cashflow_core.io.budget import load_budget
from cashflow_core.io.config import load_forecast_config, resolve_today
from cashflow_core.io.filters import ConditionFilterCompiler
from cashflow_core.io.ledger import LedgerQuerySource, load_ledger, prepare_ledger
from cashflow_core.services.orchestrator import CashFlowForecaster

LEDGER_CSV = """date,amount,payee,category,transfer_account,offbudget
2023-12-20,100000,Opening,,,false
2024-01-05,50000,Employer,Salary,,false
2024-01-05,-1500,Grocer,Food,,false
2024-01-10,-20000,Landlord,Rent,,false
2024-01-12,-30000,Savings,,savings,false
2024-01-12,30000,Checking,,checking,true
2024-02-03,-4500,Grocer,Food,,false
"""


def _frame(tmp_path: Path) -> pd.DataFrame:
    path = tmp_path / "ledger.csv"
    path.write_text(LEDGER_CSV)
    return load_ledger(path)


def test_load_ledger_normalizes_columns(tmp_path: Path):
    df = _frame(tmp_path)
    assert df["date"].iloc[0] == dt.date(2023, 12, 20)
    assert df["amount"].dtype == "int64"
    assert df["transfer_account"].iloc[1] is None
    assert df["transfer_account"].iloc[4] == "savings"
    assert df["offbudget"].tolist() == [False, False, False, False, False, True, False]


def test_missing_required_columns(tmp_path: Path):
    with pytest.raises(ConfigError):
        prepare_ledger(pd.DataFrame({"when": ["2024-01-01"], "amount": [1]}))
    with pytest.raises(FileNotFoundError):
        load_ledger(tmp_path / "nope.csv")


def test_grouped_daily_and_monthly(tmp_path: Path):
    source = LedgerQuerySource(_frame(tmp_path))
    negative = asyncio.run(
        source.grouped(None, start=dt.date(2024, 1, 1), end=dt.date(2024, 1, 31), granularity=Granularity.DAILY, sign="negative")
    )
    assert {(r["date"], r["isTransfer"], r["amount"]) for r in negative} == {
        (dt.date(2024, 1, 5), None, -1500),
        (dt.date(2024, 1, 10), None, -20000),
        (dt.date(2024, 1, 12), "savings", -30000),
    }

    monthly = asyncio.run(
        source.grouped(None, start=dt.date(2024, 1, 1), end=dt.date(2024, 2, 29), granularity=Granularity.MONTHLY, sign="negative")
    )
    totals = {(r["date"], r["isTransfer"]): r["amount"] for r in monthly}
    assert totals[(dt.date(2024, 1, 1), None)] == -21500
    assert totals[(dt.date(2024, 2, 1), None)] == -4500


def test_sum_amount_excludes_offbudget_and_transfers(tmp_path: Path):
    source = LedgerQuerySource(_frame(tmp_path))
    assert asyncio.run(source.sum_amount(None, before=dt.date(2024, 1, 1))) == 100000
    income = asyncio.run(
        source.sum_amount(None, start=dt.date(2024, 1, 1), end=dt.date(2024, 1, 31), sign="positive", exclude_transfers=True)
    )
    assert income == 50000


def test_filter_compiler_and_or(tmp_path: Path):
    df = _frame(tmp_path)
    compiler = ConditionFilterCompiler(fields=df.columns)
    grocer = Condition("payee", "is", "Grocer")
    rent = Condition("category", "oneOf", ["Rent"])

    any_of = asyncio.run(compiler.compile([grocer, rent], ConditionsOp.OR))
    all_of = asyncio.run(compiler.compile([grocer, rent], ConditionsOp.AND))
    assert int(any_of(df).sum()) == 3
    assert int(all_of(df).sum()) == 0

    since = asyncio.run(compiler.compile([Condition("date", "gte", "2024-01-10")], ConditionsOp.AND))
    assert int(since(df).sum()) == 4
    text = asyncio.run(compiler.compile([Condition("payee", "contains", "groc")], ConditionsOp.AND))
    assert int(text(df).sum()) == 2


def test_filter_compiler_rejects_unknown_operator_and_field():
    compiler = ConditionFilterCompiler(fields=["payee"])
    with pytest.raises(ConfigError):
        asyncio.run(compiler.compile([Condition("payee", "sounds-like", "x")], ConditionsOp.AND))
    with pytest.raises(ConfigError):
        asyncio.run(compiler.compile([Condition("memo", "is", "x")], ConditionsOp.AND))


def test_budget_file(tmp_path: Path):
    path = tmp_path / "budget.json"
    path.write_text(json.dumps({"2024-01": {"total-saved": 1234}}))
    ledger = load_budget(path)
    assert asyncio.run(ledger.get("2024-01", "total-saved")) == {"value": 1234}
    assert asyncio.run(ledger.get("2024-01", "total-budgeted")) == {"value": 0}
    assert asyncio.run(ledger.get("2030-01", "total-saved")) == {"value": 0}

    broken = tmp_path / "broken.json"
    broken.write_text("{not json")
    with pytest.raises(ConfigError):
        load_budget(broken)


def test_forecast_config(tmp_path: Path, monkeypatch):
    path = tmp_path / "cfg.json"
    path.write_text(
        json.dumps(
            {
                "start_month": "2024-01",
                "end_month": "2024-02",
                "granularity": "monthly",
                "conditions": [
                    {"field": "payee", "op": "is", "value": "Grocer"},
                    {"field": "category", "op": "is", "value": "Fun", "customName": "x"},
                ],
                "conditions_op": "or",
                "today": "2024-01-10",
            }
        )
    )
    cfg = load_forecast_config(path)
    assert cfg.date_range == DateRange(dt.date(2024, 1, 1), dt.date(2024, 2, 29))
    assert cfg.granularity is Granularity.MONTHLY
    assert cfg.conditions_op is ConditionsOp.OR
    assert cfg.conditions[1].custom_name == "x"
    assert cfg.today == dt.date(2024, 1, 10)

    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps({"start_month": "2024-01", "granularity": "hourly"}))
    with pytest.raises(ConfigError):
        load_forecast_config(bad)

    monkeypatch.setenv("CASHFLOW_TODAY", "2024-03-04")
    assert resolve_today() == dt.date(2024, 3, 4)
    assert resolve_today(dt.date(2024, 1, 1)) == dt.date(2024, 1, 1)


def test_forecast_config_auto_granularity_and_unreadable_files(tmp_path: Path):
    auto = tmp_path / "auto.json"
    auto.write_text(json.dumps({"start_month": "2024-01", "end_month": "2024-06", "granularity": "auto"}))
    cfg = load_forecast_config(auto)
    assert cfg.granularity is None
    assert cfg.resolved_granularity is Granularity.MONTHLY

    short = tmp_path / "short.json"
    short.write_text(json.dumps({"start_month": "2024-01"}))
    assert load_forecast_config(short).resolved_granularity is Granularity.DAILY

    broken = tmp_path / "broken.json"
    broken.write_text("{not json")
    for path in (broken, tmp_path / "missing.json"):
        with pytest.raises(ConfigError):
            load_forecast_config(path)

    bad_month = tmp_path / "bad_month.json"
    bad_month.write_text(json.dumps({"start_month": "2024"}))
    with pytest.raises(ConfigError):
        load_forecast_config(bad_month)


def test_pipeline_over_ledger(tmp_path: Path):
    df = _frame(tmp_path)
    budget_path = tmp_path / "budget.json"
    budget_path.write_text(json.dumps({"2024-01": {"total-saved": 140000, "total-budget-income": 50000, "total-budgeted": 30000}}))
    forecaster = CashFlowForecaster(
        filters=ConditionFilterCompiler(fields=df.columns),
        queries=LedgerQuerySource(df),
        budget=load_budget(budget_path),
    )
    result = asyncio.run(
        forecaster.run(DateRange.for_months("2024-01", "2024-01"), Granularity.DAILY, today=dt.date(2024, 1, 12))
    )
    amounts = {p.x: p.amount for p in result.balances}
    assert amounts[dt.date(2024, 1, 1)] == 100000
    assert amounts[dt.date(2024, 1, 5)] == 148500
    assert amounts[dt.date(2024, 1, 12)] == 98500
    assert amounts[dt.date(2024, 1, 31)] == 140000
    assert result.total_transfers == -30000

    with pytest.raises(DataSourceError):
        asyncio.run(
            forecaster.run(
                DateRange.for_months("2024-01", "2024-01"),
                Granularity.DAILY,
                [Condition("payee", "sounds-like", "x")],
                today=dt.date(2024, 1, 12),
            )
        )
