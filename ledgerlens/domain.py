import math
from dataclasses import dataclass, field
from datetime import date as Date
from enum import Enum
from typing import NamedTuple, Optional

INCOME_CATEGORY = "Income"
# Categories kept out of every spend-side aggregate.
EXCLUDED_CATEGORIES = frozenset({"Income", "Savings", "Transfer"})

MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)

DAY_NAMES = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")


@dataclass(frozen=True)
class Transaction:
    date: Optional[Date]       # None when the source date was unparseable
    amount: float              # + for spend / income, as exported by the bank
    category: Optional[str]
    description: str = ""

    @property
    def year(self) -> Optional[int]:
        return self.date.year if self.date else None

    @property
    def month(self) -> Optional[int]:
        return self.date.month if self.date else None

    @property
    def week_of_month(self) -> Optional[int]:
        return math.ceil(self.date.day / 7) if self.date else None

    @property
    def day_of_week(self) -> Optional[int]:
        # 0=Sunday .. 6=Saturday
        return (self.date.weekday() + 1) % 7 if self.date else None

    @property
    def iso_date(self) -> str:
        return self.date.isoformat() if self.date else ""

    @property
    def is_dated(self) -> bool:
        return self.date is not None


class Scope(str, Enum):
    YEARLY = "yearly"
    MONTHLY = "monthly"
    WEEKLY = "weekly"


class GroupingKey(str, Enum):
    MONTH = "Month"
    WEEK_OF_MONTH = "WeekOfMonth"
    DATE = "Date"


@dataclass(frozen=True)
class PeriodSelection:
    year: int
    month: Optional[int] = None
    week: Optional[int] = None


class Totals(NamedTuple):
    income: float
    spent: float
    net: float


class HealthStatus(str, Enum):
    CRITICAL = "Critical"
    MONITOR_OVERSPEND = "Monitor-Overspend"
    MONITOR_NO_INCOME = "Monitor-NoIncome"
    HEALTHY = "Healthy"


@dataclass(frozen=True)
class HealthReport:
    status: HealthStatus
    income: float
    spent: float
    spent_percentage: float  # spent / income * 100, 0 when there is no income
    net: float


class CategoryShare(NamedTuple):
    category: str
    amount: float
    percentage: float


class TrendPoint(NamedTuple):
    label: str
    amount: float


@dataclass(frozen=True)
class MultiCategoryTrend:
    periods: tuple[str, ...]
    series: tuple[tuple[str, tuple[float, ...]], ...]

    @property
    def insufficient(self) -> bool:
        return len(self.periods) < 2


class ScatterPoint(NamedTuple):
    day_of_week: int
    amount: float
    category: str


class WasteEntry(NamedTuple):
    reason: str
    amount: float
    percentage: float


@dataclass(frozen=True)
class WasteReport:
    entries: tuple[WasteEntry, ...] = ()
    total: float = 0.0

    @property
    def is_empty(self) -> bool:
        return not self.entries


class SeriesPoint(NamedTuple):
    sequence: int
    year: int
    month: int
    amount: float


CategorySeries = tuple[SeriesPoint, ...]


class RegressionFit(NamedTuple):
    slope: float
    intercept: float
    mse: float


class CategoryForecast(NamedTuple):
    category: str
    next_month: float
    next_year: float
    mse: float


@dataclass(frozen=True)
class ForecastReport:
    next_sequence: int
    rows: tuple[CategoryForecast, ...] = field(default_factory=tuple)
    total_next_month: float = 0.0
    total_next_year: float = 0.0
