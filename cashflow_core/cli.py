from __future__ import annotations

import asyncio
import dataclasses
import datetime as dt
import json
import logging
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from cashflow_core.domain.models import (
    ForecastConfig,
    ForecastResult,
    Granularity,
    SimpleCashFlow,
    parse_month,
    to_major,
)
from cashflow_core.errors import CashFlowError
from cashflow_core.io import budget as budget_io
from cashflow_core.io import config as config_io
from cashflow_core.io import ledger as ledger_io
from cashflow_core.io.filters import ConditionFilterCompiler
from cashflow_core.services.orchestrator import CashFlowForecaster

app = typer.Typer(help="Cash flow forecast CLI: actual balances blended with budget checkpoints.")
console = Console()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


def _save_json(path: Path, payload):
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)


def _money(amount: int) -> str:
    return f"{to_major(amount):,.2f}"


def _parse_today(raw: Optional[str]) -> Optional[dt.date]:
    if not raw:
        return None
    try:
        return dt.date.fromisoformat(raw)
    except ValueError as exc:
        raise typer.BadParameter(f"--today must be YYYY-MM-DD, got {raw!r}") from exc


def _build_config(
    config: Optional[Path],
    start: Optional[str],
    end: Optional[str],
    concise: Optional[bool],
    today: Optional[str],
) -> ForecastConfig:
    """Config file values overridden by any option given. Unset granularity follows the range length."""
    if config:
        loaded = config_io.load_forecast_config(config)
    elif start:
        loaded = ForecastConfig(start_month=parse_month(start), end_month=parse_month(end or start))
    else:
        raise typer.BadParameter("Provide either --config or --start")

    cfg = ForecastConfig(
        start_month=parse_month(start) if start else loaded.start_month,
        end_month=parse_month(end) if end else loaded.end_month,
        granularity=loaded.granularity if concise is None else _granularity(concise),
        conditions=loaded.conditions,
        conditions_op=loaded.conditions_op,
        today=config_io.resolve_today(_parse_today(today) or loaded.today),
    )
    return dataclasses.replace(cfg, granularity=cfg.resolved_granularity)


def _granularity(concise: bool) -> Granularity:
    return Granularity.MONTHLY if concise else Granularity.DAILY


def _print_result(result: ForecastResult, cfg: ForecastConfig) -> None:
    table = Table(title=f"Cash flow {cfg.start_month:%Y-%m} .. {cfg.end_month:%Y-%m}")
    table.add_column("Date")
    table.add_column("Income", justify="right")
    table.add_column("Expenses", justify="right")
    table.add_column("Transfers", justify="right")
    table.add_column("Balance", justify="right")

    income = {p.x: p.amount for p in result.income}
    expenses = {p.x: p.amount for p in result.expenses}
    transfers = {p.x: p.amount for p in result.transfers}
    for point in result.balances:
        table.add_row(
            point.x.strftime("%B %Y") if cfg.granularity is Granularity.MONTHLY else point.x.isoformat(),
            _money(income.get(point.x, 0)),
            _money(expenses.get(point.x, 0)),
            _money(transfers.get(point.x, 0)),
            _money(point.amount),
            style="cyan" if point.label.forecasted else None,
        )
    console.print(table)
    console.print(
        f"[bold]Income[/bold] {_money(result.total_income)}  "
        f"[bold]Expenses[/bold] {_money(result.total_expenses)}  "
        f"[bold]Transfers[/bold] {_money(result.total_transfers)}  "
        f"[bold]Balance[/bold] {_money(result.final_balance)}  "
        f"[bold]Change[/bold] {_money(result.total_change)}"
    )
    if not result.forecast_applied:
        console.print("[yellow]No budget forecast applied.[/yellow]")


@app.command()
def forecast(
    ledger: Path = typer.Option(..., help="CSV ledger with date,amount[,transfer_account,offbudget,...]"),
    budget: Optional[Path] = typer.Option(None, help="Budget JSON: {\"YYYY-MM\": {\"total-saved\": ...}}"),
    config: Optional[Path] = typer.Option(None, help="Forecast config JSON"),
    start: Optional[str] = typer.Option(None, help="First month (YYYY-MM)"),
    end: Optional[str] = typer.Option(None, help="Last month (YYYY-MM)"),
    concise: Optional[bool] = typer.Option(
        None, "--concise/--daily", help="Monthly or daily buckets [default: monthly for ranges over 93 days]"
    ),
    today: Optional[str] = typer.Option(None, help="Override today's date (YYYY-MM-DD)"),
    out: Optional[Path] = typer.Option(None, help="Output path for forecast JSON"),
    verbose: bool = typer.Option(False, help="Debug logging"),
):
    """Balance, income and expense series with the budget forecast overlay."""
    _configure_logging(verbose)
    try:
        cfg = _build_config(config, start, end, concise, today)
        frame = ledger_io.load_ledger(ledger)
        forecaster = CashFlowForecaster(
            filters=ConditionFilterCompiler(fields=frame.columns),
            queries=ledger_io.LedgerQuerySource(frame),
            budget=budget_io.load_budget(budget) if budget else None,
        )
        result = asyncio.run(
            forecaster.run(cfg.date_range, cfg.granularity, cfg.conditions, cfg.conditions_op, today=cfg.today)
        )
    except (CashFlowError, OSError) as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)

    if out:
        _save_json(out, result.to_dict())
        typer.echo(f"Forecast written to {out}")
    else:
        _print_result(result, cfg)


@app.command()
def summary(
    ledger: Path = typer.Option(..., help="CSV ledger with date,amount[,transfer_account,offbudget,...]"),
    config: Optional[Path] = typer.Option(None, help="Forecast config JSON (range and filter conditions)"),
    start: Optional[str] = typer.Option(None, help="First month (YYYY-MM)"),
    end: Optional[str] = typer.Option(None, help="Last month (YYYY-MM)"),
    today: Optional[str] = typer.Option(None, help="Override today's date (YYYY-MM-DD)"),
    verbose: bool = typer.Option(False, help="Debug logging"),
):
    """Income and expenses (transfers excluded) up to today."""
    _configure_logging(verbose)
    try:
        cfg = _build_config(config, start, end, None, today)
        frame = ledger_io.load_ledger(ledger)
        forecaster = CashFlowForecaster(
            filters=ConditionFilterCompiler(fields=frame.columns),
            queries=ledger_io.LedgerQuerySource(frame),
        )
        totals: SimpleCashFlow = asyncio.run(
            forecaster.simple(cfg.date_range, cfg.conditions, cfg.conditions_op, today=cfg.today)
        )
    except (CashFlowError, OSError) as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=1)

    console.print(f"[green]Income:[/green] {_money(totals.income)}")
    console.print(f"[red]Expenses:[/red] {_money(totals.expense)}")
    console.print(f"[bold]Change:[/bold] {_money(totals.net)}")


if __name__ == "__main__":
    app()
