from collections import defaultdict
from functools import reduce
from typing import Dict, Iterable, Iterator, List, Tuple

from ledgerlens.domain import (
    EXCLUDED_CATEGORIES,
    MONTH_NAMES,
    CategoryShare,
    GroupingKey,
    HealthReport,
    HealthStatus,
    MultiCategoryTrend,
    ScatterPoint,
    Scope,
    Totals,
    Transaction,
    TrendPoint,
)
from ledgerlens.transforms import income_transactions, spend_transactions

UNCATEGORIZED = "Uncategorized"
SPENDING_INCOME_THRESHOLD = 0.5


def category_label(t: Transaction) -> str:
    return t.category or UNCATEGORIZED


def _sum(trans: Iterable[Transaction]) -> float:
    return reduce(lambda acc, t: acc + t.amount, trans, 0.0)


def totals(trans: Tuple[Transaction, ...]) -> Totals:
    income = _sum(income_transactions(trans))
    spent = _sum(spend_transactions(trans))
    return Totals(income=income, spent=spent, net=income - spent)


def classify_health(income: float, spent: float) -> HealthReport:
    percentage = round(spent / income * 100, 1) if income > 0 else 0.0

    if income > 0 and spent > income:
        status = HealthStatus.CRITICAL
    elif income > 0 and spent > income * SPENDING_INCOME_THRESHOLD:
        status = HealthStatus.MONITOR_OVERSPEND
    elif income == 0 and spent > 0:
        status = HealthStatus.MONITOR_NO_INCOME
    else:
        status = HealthStatus.HEALTHY

    return HealthReport(
        status=status,
        income=income,
        spent=spent,
        spent_percentage=percentage,
        net=income - spent,
    )


def spend_by_category(trans: Iterable[Transaction]) -> Dict[str, float]:
    by_category: Dict[str, float] = defaultdict(float)
    for t in spend_transactions(trans):
        by_category[category_label(t)] += t.amount
    return dict(by_category)


def top_categories(trans: Iterable[Transaction], k: int) -> Iterator[Tuple[str, float]]:
    ordered = sorted(spend_by_category(trans).items(), key=lambda item: item[1], reverse=True)
    for name, total in ordered[: max(0, k)]:
        yield name, total


def category_breakdown(trans: Tuple[Transaction, ...]) -> List[CategoryShare]:
    """Spend per category, largest first; empty when nothing was spent."""
    ordered = list(top_categories(trans, k=len(trans)))
    total = sum(amount for _, amount in ordered)
    if total == 0:
        return []
    return [
        CategoryShare(category=name, amount=amount, percentage=round(amount / total * 100, 1))
        for name, amount in ordered
    ]


def _trend_label(t: Transaction, key: GroupingKey) -> str:
    if key is GroupingKey.MONTH:
        return MONTH_NAMES[t.month - 1]
    if key is GroupingKey.WEEK_OF_MONTH:
        return f"Week {t.week_of_month}"
    return t.iso_date[5:10]


def _trend_order(scope: Scope):
    if scope is Scope.YEARLY:
        return lambda label: MONTH_NAMES.index(label) if label in MONTH_NAMES else len(MONTH_NAMES)
    if scope is Scope.MONTHLY:
        return lambda label: int(label.replace("Week ", "")) if label.startswith("Week ") else 0
    # MM-DD substrings sort chronologically within a single year.
    return lambda label: label


def trend_series(trans: Tuple[Transaction, ...], key: GroupingKey, scope: Scope) -> List[TrendPoint]:
    by_label: Dict[str, float] = defaultdict(float)
    for t in spend_transactions(trans):
        if t.is_dated:
            by_label[_trend_label(t, key)] += t.amount

    order = _trend_order(scope)
    return [TrendPoint(label, by_label[label]) for label in sorted(by_label, key=order)]


def multi_category_trend(
    trans: Tuple[Transaction, ...], scope: Scope, top_n: int = 5
) -> MultiCategoryTrend:
    """Per-period spend of the top categories across the whole history.

    Periods are keyed ``YYYY-MM`` for the yearly scope and by ISO date
    otherwise; zero-padded keys make the lexical sort chronological.
    """
    periods: Dict[str, Dict[str, float]] = {}
    labels: Dict[str, str] = {}
    for t in spend_transactions(trans):
        if not t.is_dated:
            continue
        if scope is Scope.YEARLY:
            period_key = f"{t.year}-{t.month:02d}"
            labels[period_key] = MONTH_NAMES[t.month - 1]
        else:
            period_key = t.iso_date
            labels[period_key] = t.iso_date[5:10]
        bucket = periods.setdefault(period_key, defaultdict(float))
        bucket[category_label(t)] += t.amount

    ordered_keys = sorted(periods)

    # Ranking totals use every record of a non-excluded category, refunds included.
    category_totals: Dict[str, float] = {}
    for t in trans:
        if t.category in EXCLUDED_CATEGORIES:
            continue
        name = category_label(t)
        category_totals[name] = category_totals.get(name, 0.0) + t.amount
    ranked = sorted(category_totals.items(), key=lambda item: item[1], reverse=True)[: max(0, top_n)]

    series = tuple(
        (name, tuple(periods[k].get(name, 0.0) for k in ordered_keys))
        for name, _ in ranked
    )
    return MultiCategoryTrend(periods=tuple(labels[k] for k in ordered_keys), series=series)


def spend_scatter(trans: Tuple[Transaction, ...], top_n: int = 8) -> List[ScatterPoint]:
    """Day-of-week vs amount points for the ``top_n`` spending categories."""
    top = {name for name, _ in top_categories(trans, k=top_n)}
    return [
        ScatterPoint(day_of_week=t.day_of_week, amount=t.amount, category=category_label(t))
        for t in spend_transactions(trans)
        if t.is_dated and category_label(t) in top
    ]
