from datetime import date

import pytest

from ledgerlens.domain import HealthStatus, PeriodSelection, Scope, Transaction
from ledgerlens.errors import ForecastBusyError
from ledgerlens.events import FORECAST_FAILED, EventBus
from ledgerlens.forecast import forecast_all
from ledgerlens.services import DashboardService, ForecastService, ForecastState, calc_totals


def make_tx(ts, amount, category, description=""):
    return Transaction(date=date.fromisoformat(ts), amount=amount, category=category, description=description)


def make_sample():
    return (
        make_tx("2024-02-01", 2000, "Income"),
        make_tx("2024-02-04", 300, "Groceries"),
        make_tx("2024-02-14", 120, "Dining Out"),
        make_tx("2024-03-01", 2000, "Income"),
        make_tx("2024-03-05", 350, "Groceries"),
        make_tx("2024-03-18", 25, "Transport", "Uber to work"),
    )


def test_report_defaults_to_previous_month():
    svc = DashboardService()
    report = svc.report(make_sample(), Scope.MONTHLY)

    assert report["selection"] == PeriodSelection(year=2024, month=2)
    assert report["title"] == "Monthly Financial Report (February 2024)"
    assert not report["no_data"]

    result = report["result"]
    assert result["totals"].spent == 420
    assert result["health"].status is HealthStatus.HEALTHY
    assert [c.category for c in result["breakdown"]] == ["Groceries", "Dining Out"]
    assert result["waste"].entries[0].reason == "Dining Out"
    # category trend spans the whole history
    assert result["category_trend"].periods == ("02-04", "02-14", "03-05", "03-18")


def test_report_records_each_calculator_step():
    report = DashboardService().report(make_sample(), Scope.YEARLY, PeriodSelection(2024))
    names = [s["calculator"] for s in report["steps"]]
    assert names[0] == "calc_totals"
    assert "calc_waste" in names
    assert report["result"]["totals"].spent == 795


def test_report_weekly_defaults_to_first_week():
    report = DashboardService().report(make_sample(), Scope.WEEKLY)
    assert report["selection"] == PeriodSelection(2024, 2, 1)
    assert [t.amount for t in report["result"]["subset"]] == [2000, 300]


def test_report_is_repeatable():
    svc = DashboardService()
    first = svc.report(make_sample(), Scope.MONTHLY)
    second = svc.report(make_sample(), Scope.MONTHLY)
    assert first["result"] == second["result"]


def test_report_without_data():
    report = DashboardService(calculators=(calc_totals,)).report((), Scope.MONTHLY)
    assert report["no_data"]
    assert report["title"] == "Financial Summary"
    assert report["result"] == {}


def test_forecast_service_lifecycle():
    svc = ForecastService()
    assert svc.state is ForecastState.IDLE
    assert not svc.can_run

    assert svc.load(make_sample()) is ForecastState.READY
    assert svc.can_run
    outcome = svc.run()
    assert outcome.is_right()
    report = outcome.get_or_else(None)
    assert [r.category for r in report.rows] == ["Groceries"]
    assert report.next_sequence == 3
    assert svc.report is report
    assert svc.state is ForecastState.READY


def test_forecast_service_idle_when_history_too_short():
    svc = ForecastService()
    assert svc.load(make_sample()[:3]) is ForecastState.IDLE
    outcome = svc.run()
    assert outcome.get_or_else(None).rows == ()


def test_forecast_failure_then_retry():
    bus = EventBus()
    failures = []
    bus.subscribe(FORECAST_FAILED, lambda e, p: failures.append(p))
    calls = []

    def flaky(series_map, horizon):
        calls.append(horizon)
        if len(calls) == 1:
            raise RuntimeError("numeric trouble")
        return forecast_all(series_map, horizon)

    svc = ForecastService(bus=bus, horizon=6, forecaster=flaky)
    svc.load(make_sample())

    outcome = svc.run()
    assert outcome.is_left()
    assert outcome.get_error()["message"] == "numeric trouble"
    assert svc.state is ForecastState.ERROR
    assert failures[0]["error"] == "forecast_failed"
    assert svc.can_run

    assert svc.run().is_right()
    assert svc.state is ForecastState.READY
    assert calls == [6, 6]


def test_forecast_refuses_reentry():
    svc = ForecastService()
    svc.load(make_sample())

    def reenter(series_map, horizon):
        with pytest.raises(ForecastBusyError):
            svc.run()
        with pytest.raises(ForecastBusyError):
            svc.load(())
        return forecast_all(series_map, horizon)

    svc.forecaster = reenter
    assert svc.run().is_right()
    assert svc.state is ForecastState.READY
