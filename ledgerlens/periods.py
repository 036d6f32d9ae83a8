from typing import Callable, List, Optional, Tuple

from ledgerlens.domain import MONTH_NAMES, GroupingKey, PeriodSelection, Scope, Transaction
from ledgerlens.errors import PeriodSelectionError

Predicate = Callable[[Transaction], bool]


def by_year(year: int) -> Predicate:
    def _filter(t: Transaction) -> bool:
        return t.year == year

    return _filter


def by_month(month: int) -> Predicate:
    def _filter(t: Transaction) -> bool:
        return t.month == month

    return _filter


def by_week_of_month(week: int) -> Predicate:
    def _filter(t: Transaction) -> bool:
        return t.week_of_month == week

    return _filter


def all_of(*preds: Predicate) -> Predicate:
    def _filter(t: Transaction) -> bool:
        return all(p(t) for p in preds)

    return _filter


def available_years(trans: Tuple[Transaction, ...]) -> List[int]:
    return sorted({t.year for t in trans if t.is_dated}, reverse=True)


def resolve_default_period(trans: Tuple[Transaction, ...]) -> Optional[PeriodSelection]:
    """Pick the month before the latest transaction's month.

    Falls back to the latest month itself when the previous month's year has
    no data at all (e.g. a single January of statements).
    """
    dated = [t for t in trans if t.is_dated]
    if not dated:
        return None

    latest = max(dated, key=lambda t: t.date)
    year, month = latest.year, latest.month - 1
    if month == 0:
        year, month = year - 1, 12

    if year in available_years(trans):
        return PeriodSelection(year=year, month=month)
    return PeriodSelection(year=latest.year, month=latest.month)


def validate_selection(scope: Scope, selection: PeriodSelection) -> PeriodSelection:
    if selection.year is None:
        raise PeriodSelectionError(f"{scope.value} scope requires a year")
    if scope in (Scope.MONTHLY, Scope.WEEKLY):
        if selection.month is None:
            raise PeriodSelectionError(f"{scope.value} scope requires a month")
        if not 1 <= selection.month <= 12:
            raise PeriodSelectionError(f"month must be 1-12, got {selection.month}")
    if scope is Scope.WEEKLY:
        if selection.week is None:
            raise PeriodSelectionError("weekly scope requires a week of month")
        if not 1 <= selection.week <= 5:
            raise PeriodSelectionError(f"week must be 1-5, got {selection.week}")
    return selection


def scope_predicate(scope: Scope, selection: PeriodSelection) -> Predicate:
    validate_selection(scope, selection)
    preds = [by_year(selection.year)]
    if scope in (Scope.MONTHLY, Scope.WEEKLY):
        preds.append(by_month(selection.month))
    if scope is Scope.WEEKLY:
        preds.append(by_week_of_month(selection.week))
    return all_of(*preds)


def filter_transactions(
    trans: Tuple[Transaction, ...], scope: Scope, selection: PeriodSelection
) -> Tuple[Transaction, ...]:
    return tuple(filter(scope_predicate(scope, selection), trans))


def grouping_key(scope: Scope) -> GroupingKey:
    return {
        Scope.YEARLY: GroupingKey.MONTH,
        Scope.MONTHLY: GroupingKey.WEEK_OF_MONTH,
        Scope.WEEKLY: GroupingKey.DATE,
    }[scope]


def period_title(scope: Scope, selection: Optional[PeriodSelection]) -> str:
    if selection is None:
        return "Financial Summary"
    if scope is Scope.YEARLY:
        return f"Annual Financial Report ({selection.year})"
    month_name = MONTH_NAMES[selection.month - 1] if selection.month else "N/A"
    if scope is Scope.MONTHLY:
        return f"Monthly Financial Report ({month_name} {selection.year})"
    return f"Weekly Financial Report (Week {selection.week}, {month_name} {selection.year})"
