from dataclasses import replace
from enum import Enum
from typing import Any, Callable, Dict, NamedTuple, Optional, Sequence, Tuple

from ledgerlens.aggregation import (
    category_breakdown,
    classify_health,
    multi_category_trend,
    spend_scatter,
    totals,
    trend_series,
)
from ledgerlens.domain import CategorySeries, ForecastReport, PeriodSelection, Scope, Transaction
from ledgerlens.errors import ForecastBusyError
from ledgerlens.events import FORECAST_FAILED, EventBus
from ledgerlens.forecast import build_category_series, forecast_all
from ledgerlens.functional import Either, Right, attempt
from ledgerlens.logging_setup import get_logger
from ledgerlens.periods import filter_transactions, grouping_key, period_title, resolve_default_period
from ledgerlens.waste import DEFAULT_RULES, WasteRules, classify_waste

logger = get_logger(__name__)


class DashboardContext(NamedTuple):
    transactions: Tuple[Transaction, ...]  # full history
    subset: Tuple[Transaction, ...]        # the selected period
    scope: Scope
    selection: PeriodSelection
    top_n: int
    waste_rules: WasteRules


Calculator = Callable[[DashboardContext], Dict[str, Any]]


def calc_totals(ctx: DashboardContext) -> Dict[str, Any]:
    t = totals(ctx.subset)
    return {"totals": t, "health": classify_health(t.income, t.spent)}


def calc_breakdown(ctx: DashboardContext) -> Dict[str, Any]:
    return {"breakdown": category_breakdown(ctx.subset)}


def calc_trend(ctx: DashboardContext) -> Dict[str, Any]:
    return {"trend": trend_series(ctx.subset, grouping_key(ctx.scope), ctx.scope)}


def calc_waste(ctx: DashboardContext) -> Dict[str, Any]:
    return {"waste": classify_waste(ctx.subset, ctx.waste_rules)}


def calc_category_trend(ctx: DashboardContext) -> Dict[str, Any]:
    # Uses the whole history, not only the selected period.
    return {"category_trend": multi_category_trend(ctx.transactions, ctx.scope, ctx.top_n)}


def calc_scatter(ctx: DashboardContext) -> Dict[str, Any]:
    return {"scatter": spend_scatter(ctx.subset)}


DEFAULT_CALCULATORS: Tuple[Calculator, ...] = (
    calc_totals,
    calc_breakdown,
    calc_trend,
    calc_waste,
    calc_category_trend,
    calc_scatter,
)


class DashboardService:
    """Facade building every dashboard view for one scope and period.

    calculators: sequence of functions taking a DashboardContext -> dict (partial results)
    """

    def __init__(
        self,
        calculators: Sequence[Calculator] = DEFAULT_CALCULATORS,
        top_n: int = 5,
        waste_rules: WasteRules = DEFAULT_RULES,
    ):
        self.calculators = calculators
        self.top_n = top_n
        self.waste_rules = waste_rules

    def resolve_selection(
        self, transactions: Tuple[Transaction, ...], scope: Scope, selection: Optional[PeriodSelection]
    ) -> Optional[PeriodSelection]:
        selection = selection or resolve_default_period(transactions)
        if selection is not None and scope is Scope.WEEKLY and selection.week is None:
            selection = replace(selection, week=1)
        return selection

    def report(
        self,
        transactions: Tuple[Transaction, ...],
        scope: Scope,
        selection: Optional[PeriodSelection] = None,
    ) -> Dict[str, Any]:
        """Run calculators in order and return the report with intermediate steps.

        With no dated transactions the report is empty and flagged ``no_data``.
        """
        selection = self.resolve_selection(transactions, scope, selection)
        report: Dict[str, Any] = {
            "scope": scope,
            "selection": selection,
            "title": period_title(scope, selection),
            "no_data": selection is None,
            "steps": [],
            "result": {},
        }
        if selection is None:
            return report

        ctx = DashboardContext(
            transactions=transactions,
            subset=filter_transactions(transactions, scope, selection),
            scope=scope,
            selection=selection,
            top_n=self.top_n,
            waste_rules=self.waste_rules,
        )
        acc: Dict[str, Any] = {"subset": ctx.subset}
        for calc in self.calculators:
            out = calc(ctx)
            report["steps"].append({"calculator": getattr(calc, "__name__", str(calc)), "output": out})
            if isinstance(out, dict):
                acc.update(out)

        report["result"] = acc
        return report


class ForecastState(str, Enum):
    IDLE = "idle"
    READY = "ready"
    COMPUTING = "computing"
    ERROR = "error"


Forecaster = Callable[..., ForecastReport]


class ForecastService:
    """Per-category spending forecast with an explicit run state.

    ``load`` is called on every data reload and moves between IDLE (no
    category has two months of spend) and READY. ``run`` refuses re-entry
    while COMPUTING; a failure is reported as ``Left`` and leaves the service
    in ERROR, from which the next ``run`` retries.
    """

    def __init__(self, bus: Optional[EventBus] = None, horizon: int = 12, forecaster: Forecaster = forecast_all):
        self.bus = bus
        self.horizon = horizon
        self.forecaster = forecaster
        self.state = ForecastState.IDLE
        self.series: Dict[str, CategorySeries] = {}
        self.report: Optional[ForecastReport] = None
        self.error: Optional[dict] = None

    def load(self, transactions: Tuple[Transaction, ...]) -> ForecastState:
        if self.state is ForecastState.COMPUTING:
            raise ForecastBusyError("cannot reload data while a forecast is computing")
        self.series = build_category_series(transactions)
        self.report = None
        self.error = None
        self.state = ForecastState.READY if self.series else ForecastState.IDLE
        logger.debug("Forecast %s with %d eligible categories", self.state.value, len(self.series))
        return self.state

    @property
    def can_run(self) -> bool:
        return self.state in (ForecastState.READY, ForecastState.ERROR) and bool(self.series)

    def run(self) -> Either[dict, ForecastReport]:
        if self.state is ForecastState.COMPUTING:
            raise ForecastBusyError("a forecast is already computing")
        if not self.series:
            return Right(ForecastReport(next_sequence=1))

        self.state = ForecastState.COMPUTING
        result = attempt("forecast_failed", self.forecaster, self.series, self.horizon)
        if result.is_right():
            self.report = result.get_or_else(None)
            self.error = None
            self.state = ForecastState.READY
        else:
            self.error = result.get_error()
            self.state = ForecastState.ERROR
            logger.error("Forecast failed: %s", self.error["message"])
            if self.bus is not None:
                self.bus.publish(FORECAST_FAILED, dict(self.error))
        return result
