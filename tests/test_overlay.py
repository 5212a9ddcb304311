import datetime as dt
from decimal import Decimal

from cashflow_core.domain.models import AggregateRow, Checkpoint, Granularity, SeriesPoint
from cashflow_core.services.aggregator import index_cash_flow
from cashflow_core.services.balances import build_running_balance
from cashflow_core.services.buckets import bucket_sequence
from cashflow_core.services.chart import chart_rows
from cashflow_core.services.overlay import apply_forecast, merge_point, round_half_away


def _jan(day: int) -> dt.date:
    return dt.date(2024, 1, day)


def _two_month_result():
    days = bucket_sequence(_jan(1), dt.date(2024, 2, 29), Granularity.DAILY)
    income = index_cash_flow([AggregateRow(_jan(5), False, 50000)])
    expense = index_cash_flow([AggregateRow(_jan(10), False, -20000)])
    return build_running_balance(days, 100000, income, expense)


def _by_date(result):
    return {p.x: p.amount for p in result.balances}


def test_end_to_end_scenario_interpolates_to_checkpoint():
    actual = _two_month_result()
    checkpoint = Checkpoint(_jan(20), projected_balance=140000, projected_income=0, projected_expense=0)
    result = apply_forecast(actual, Granularity.DAILY, today=_jan(10), current=checkpoint)
    amounts = _by_date(result)

    for day in range(1, 5):
        assert amounts[_jan(day)] == 100000
    for day in range(5, 10):
        assert amounts[_jan(day)] == 150000
    assert amounts[_jan(10)] == 130000
    assert amounts[_jan(11)] == 131000
    assert amounts[_jan(15)] == 135000
    assert amounts[_jan(19)] == 139000
    assert amounts[_jan(20)] == 140000
    assert amounts[_jan(21)] == 130000
    assert result.forecast_applied
    assert result.total_change == result.balances[-1].amount - result.balances[0].amount
    assert result.balances[19].y == Decimal("1400.00")


def test_overlay_does_not_mutate_input_and_is_idempotent():
    actual = _two_month_result()
    before = [p.amount for p in actual.balances]
    checkpoint = Checkpoint(_jan(20), projected_balance=140000, projected_income=8000, projected_expense=-3000)

    once = apply_forecast(actual, Granularity.DAILY, _jan(10), checkpoint)
    twice = apply_forecast(once, Granularity.DAILY, _jan(10), checkpoint)

    assert [p.amount for p in actual.balances] == before
    assert once == twice


def test_today_and_earlier_are_never_touched():
    actual = _two_month_result()
    checkpoint = Checkpoint(_jan(31), projected_balance=1)
    result = apply_forecast(actual, Granularity.DAILY, _jan(10), checkpoint)
    assert result.balances[:10] == actual.balances[:10]
    assert all(p.label.forecasted for p in result.balances[10:31])


def test_zero_day_span_only_replaces_checkpoint():
    actual = _two_month_result()
    checkpoint = Checkpoint(_jan(10), projected_balance=99999)
    result = apply_forecast(actual, Granularity.DAILY, _jan(10), checkpoint)
    amounts = _by_date(result)
    assert amounts[_jan(10)] == 99999
    assert amounts[_jan(11)] == 130000
    assert amounts[_jan(9)] == 150000


def test_next_period_segment_uses_checkpoint_delta():
    actual = _two_month_result()
    current = Checkpoint(_jan(31), projected_balance=130000 + 2100)
    following = Checkpoint(dt.date(2024, 2, 29), projected_balance=130000 + 2100 + 2900)
    result = apply_forecast(actual, Granularity.DAILY, _jan(10), current, following)
    amounts = _by_date(result)

    assert amounts[_jan(11)] == 130000 + 100
    assert amounts[_jan(31)] == 132100
    assert amounts[dt.date(2024, 2, 1)] == 132100 + 100
    assert amounts[dt.date(2024, 2, 15)] == 132100 + 1500
    assert amounts[dt.date(2024, 2, 29)] == 135000


def test_missing_anchor_leaves_series_untouched():
    actual = _two_month_result()
    result = apply_forecast(actual, Granularity.DAILY, _jan(10), Checkpoint(dt.date(2024, 6, 30), 5))
    assert result is actual
    assert not result.forecast_applied


def test_today_outside_series_still_replaces_checkpoints():
    actual = _two_month_result()
    result = apply_forecast(actual, Granularity.DAILY, dt.date(2023, 12, 20), Checkpoint(_jan(20), 140000))
    amounts = _by_date(result)
    assert amounts[_jan(20)] == 140000
    assert amounts[_jan(15)] == 130000


def test_monthly_replaces_whole_buckets_without_interpolation():
    months = bucket_sequence(_jan(1), dt.date(2024, 4, 30), Granularity.MONTHLY)
    actual = build_running_balance(months, 1000, index_cash_flow([AggregateRow(_jan(1), False, 500)]), {})
    current = Checkpoint(dt.date(2024, 2, 1), 4000, projected_income=2500, projected_expense=-1000)
    following = Checkpoint(dt.date(2024, 3, 1), 9000, projected_income=2600, projected_expense=-1100)
    result = apply_forecast(actual, Granularity.MONTHLY, dt.date(2024, 2, 14), current, following)

    assert [p.amount for p in result.balances] == [1500, 4000, 9000, 1500]
    assert [p.amount for p in result.income] == [500, 2500, 2600, 0]
    assert [p.amount for p in result.expenses] == [0, -1000, -1100, 0]


def test_checkpoint_income_and_expense_overwrite_series():
    actual = _two_month_result()
    checkpoint = Checkpoint(_jan(31), 120000, projected_income=300000, projected_expense=-250000)
    result = apply_forecast(actual, Granularity.DAILY, _jan(10), checkpoint)
    income = {p.x: p.amount for p in result.income}
    expenses = {p.x: p.amount for p in result.expenses}
    assert income[_jan(31)] == 300000
    assert expenses[_jan(31)] == -250000
    assert len(result.income) == len(actual.income)


def test_merge_point_inserts_in_date_order():
    series = [SeriesPoint(_jan(1), 1), SeriesPoint(_jan(3), 3)]
    merged = merge_point(series, SeriesPoint(_jan(2), 2))
    assert [p.x for p in merged] == [_jan(1), _jan(2), _jan(3)]
    assert merge_point(merged, SeriesPoint(_jan(2), 7))[1].amount == 7
    assert len(series) == 2


def test_round_half_away_from_zero():
    assert round_half_away(5, 2) == 3
    assert round_half_away(-5, 2) == -3
    assert round_half_away(12, 5) == 2
    assert round_half_away(-13, 5) == -3
    assert round_half_away(0, 7) == 0


def test_chart_rows_split_actual_and_forecast():
    actual = _two_month_result()
    result = apply_forecast(actual, Granularity.DAILY, _jan(10), Checkpoint(_jan(20), 140000, 7000, -2000))
    rows = chart_rows(result, _jan(10), Granularity.DAILY)

    assert len(rows) == len(result.balances)
    assert rows[8].forecast_balance is None
    assert rows[9].expenses == Decimal("-200.00")
    assert rows[9].expenses_forecast == Decimal("-200.00")
    assert rows[9].forecast_balance == Decimal("1300.00")
    assert rows[19].income == 0
    assert rows[19].income_forecast == Decimal("70.00")
    assert rows[19].balance == Decimal("1400.00")
