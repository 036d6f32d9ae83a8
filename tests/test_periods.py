from datetime import date

import pytest

from ledgerlens.domain import GroupingKey, PeriodSelection, Scope, Transaction
from ledgerlens.errors import PeriodSelectionError
from ledgerlens.periods import (
    available_years,
    filter_transactions,
    grouping_key,
    period_title,
    resolve_default_period,
    validate_selection,
)


def make_tx(ts, amount=10, category="Food"):
    return Transaction(date=date.fromisoformat(ts) if ts else None, amount=amount, category=category)


def test_available_years_descending_and_skips_undated():
    trans = (make_tx("2023-05-01"), make_tx("2024-01-02"), make_tx(None), make_tx("2023-07-09"))
    assert available_years(trans) == [2024, 2023]


def test_default_period_is_month_before_latest():
    trans = (make_tx("2024-02-10"), make_tx("2024-03-20"))
    assert resolve_default_period(trans) == PeriodSelection(year=2024, month=2)


def test_default_period_wraps_january():
    trans = (make_tx("2023-11-10"), make_tx("2024-01-05"))
    assert resolve_default_period(trans) == PeriodSelection(year=2023, month=12)


def test_default_period_falls_back_to_latest_month():
    trans = (make_tx("2024-01-05"), make_tx("2024-01-25"))
    assert resolve_default_period(trans) == PeriodSelection(year=2024, month=1)


def test_default_period_none_without_dates():
    assert resolve_default_period(()) is None
    assert resolve_default_period((make_tx(None),)) is None


def test_filter_by_scope():
    trans = (
        make_tx("2024-03-01"),
        make_tx("2024-03-09"),
        make_tx("2024-04-01"),
        make_tx("2023-03-01"),
        make_tx(None),
    )
    yearly = filter_transactions(trans, Scope.YEARLY, PeriodSelection(2024))
    monthly = filter_transactions(trans, Scope.MONTHLY, PeriodSelection(2024, 3))
    weekly = filter_transactions(trans, Scope.WEEKLY, PeriodSelection(2024, 3, 2))

    assert len(yearly) == 3
    assert len(monthly) == 2
    assert weekly == (trans[1],)


def test_empty_subset_is_not_an_error():
    trans = (make_tx("2024-03-01"),)
    assert filter_transactions(trans, Scope.MONTHLY, PeriodSelection(2024, 7)) == ()


def test_validate_selection_rejects_missing_parts():
    with pytest.raises(PeriodSelectionError):
        validate_selection(Scope.MONTHLY, PeriodSelection(2024))
    with pytest.raises(PeriodSelectionError):
        validate_selection(Scope.WEEKLY, PeriodSelection(2024, 3))
    with pytest.raises(PeriodSelectionError):
        validate_selection(Scope.WEEKLY, PeriodSelection(2024, 3, 6))
    with pytest.raises(ValueError):
        validate_selection(Scope.MONTHLY, PeriodSelection(2024, 13))


def test_grouping_key_per_scope():
    assert grouping_key(Scope.YEARLY) is GroupingKey.MONTH
    assert grouping_key(Scope.MONTHLY) is GroupingKey.WEEK_OF_MONTH
    assert grouping_key(Scope.WEEKLY) is GroupingKey.DATE


def test_period_titles():
    assert period_title(Scope.YEARLY, PeriodSelection(2024)) == "Annual Financial Report (2024)"
    assert period_title(Scope.MONTHLY, PeriodSelection(2024, 3)) == "Monthly Financial Report (March 2024)"
    assert (
        period_title(Scope.WEEKLY, PeriodSelection(2024, 3, 2))
        == "Weekly Financial Report (Week 2, March 2024)"
    )
    assert period_title(Scope.MONTHLY, None) == "Financial Summary"
