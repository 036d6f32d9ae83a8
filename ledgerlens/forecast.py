from functools import lru_cache
from typing import Dict, Mapping, Tuple

import numpy as np

from ledgerlens.domain import (
    CategoryForecast,
    CategorySeries,
    ForecastReport,
    RegressionFit,
    SeriesPoint,
    Transaction,
)
from ledgerlens.transforms import spend_transactions

MIN_MONTHS = 2


def _month_key(t: Transaction) -> str:
    return f"{t.year}-{t.month:02d}"


@lru_cache(maxsize=32)
def _category_series(trans: Tuple[Transaction, ...]) -> Tuple[Tuple[str, CategorySeries], ...]:
    monthly: Dict[str, Dict[str, float]] = {}
    for t in spend_transactions(trans):
        if not t.category or not t.is_dated:
            continue
        by_month = monthly.setdefault(t.category, {})
        key = _month_key(t)
        by_month[key] = by_month.get(key, 0.0) + t.amount

    # One global sequence so a month missing from a category still uses up its index.
    all_months = sorted({key for by_month in monthly.values() for key in by_month})
    sequence_of = {key: i + 1 for i, key in enumerate(all_months)}

    result = []
    for category, by_month in monthly.items():
        if len(by_month) < MIN_MONTHS:
            continue
        points = tuple(
            SeriesPoint(
                sequence=sequence_of[key],
                year=int(key[:4]),
                month=int(key[5:]),
                amount=by_month[key],
            )
            for key in sorted(by_month)
        )
        result.append((category, points))
    return tuple(result)


def build_category_series(trans: Tuple[Transaction, ...]) -> Dict[str, CategorySeries]:
    """Monthly spend per category, keyed by a dense 1-based month sequence.

    Only categories with at least two months of positive spend are kept.
    """
    return dict(_category_series(tuple(trans)))


def fit_linear_regression(series: CategorySeries) -> RegressionFit:
    n = len(series)
    if n < 2:
        return RegressionFit(slope=0.0, intercept=series[0].amount if n else 0.0, mse=0.0)

    x = np.array([p.sequence for p in series], dtype=float)
    y = np.array([p.amount for p in series], dtype=float)
    sum_x, sum_y = x.sum(), y.sum()

    denominator = n * (x * x).sum() - sum_x * sum_x
    if denominator == 0:
        return RegressionFit(slope=0.0, intercept=float(sum_y / n), mse=0.0)

    slope = (n * (x * y).sum() - sum_x * sum_y) / denominator
    intercept = (sum_y - slope * sum_x) / n
    mse = float(np.mean((slope * x + intercept - y) ** 2))
    return RegressionFit(slope=float(slope), intercept=float(intercept), mse=mse)


def predict(sequence: int, slope: float, intercept: float) -> float:
    # Spending cannot be negative.
    return max(0.0, slope * sequence + intercept)


def next_sequence(series_map: Mapping[str, CategorySeries]) -> int:
    return max((p.sequence for series in series_map.values() for p in series), default=0) + 1


def forecast_all(series_map: Mapping[str, CategorySeries], horizon: int = 12) -> ForecastReport:
    """Project every category from one shared next-period index.

    Shorter histories are not continued from their own last point: all
    categories forecast the global next month, ``max(sequence) + 1``.
    """
    nxt = next_sequence(series_map)
    rows = []
    for category in sorted(series_map):
        fit = fit_linear_regression(series_map[category])
        rows.append(
            CategoryForecast(
                category=category,
                next_month=predict(nxt, fit.slope, fit.intercept),
                next_year=sum(predict(nxt + i, fit.slope, fit.intercept) for i in range(horizon)),
                mse=fit.mse,
            )
        )

    return ForecastReport(
        next_sequence=nxt,
        rows=tuple(rows),
        total_next_month=sum(r.next_month for r in rows),
        total_next_year=sum(r.next_year for r in rows),
    )
