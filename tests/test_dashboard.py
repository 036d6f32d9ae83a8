import asyncio

import pytest

from ledgerlens.config import Settings
from ledgerlens.dashboard import Dashboard
from ledgerlens.domain import PeriodSelection, Scope
from ledgerlens.identity import StaticIdentity
from ledgerlens.services import ForecastState
from ledgerlens.store import JsonFileRecordStore, MemoryRecordStore

STATEMENT = """Date,Category,Amount,Description
2024-02-01,Income,2000,Salary
2024-02-05,Groceries,300,Market
2024-02-20,Dining Out,80,Dinner
2024-03-01,Income,2000,Salary
2024-03-06,Groceries,360,Market
"""


def make_dashboard(store=None, user_id=None):
    return Dashboard(
        settings=Settings(backend="memory"),
        identity=StaticIdentity(user_id),
        store=store if store is not None else MemoryRecordStore(),
    )


def test_refresh_needs_a_user():
    dash = make_dashboard()
    assert not dash.refresh()
    assert dash.state.transactions == ()


@pytest.mark.asyncio
async def test_upload_without_user_is_refused():
    with pytest.raises(PermissionError):
        await make_dashboard().upload(STATEMENT)


@pytest.mark.asyncio
async def test_upload_refreshes_views_and_forecast():
    dash = make_dashboard(user_id="u1")
    assert await dash.upload(STATEMENT) == 5

    assert len(dash.state.transactions) == 5
    assert dash.forecast.state is ForecastState.READY

    report = dash.view(Scope.MONTHLY)
    assert report["selection"] == PeriodSelection(2024, 2)
    assert report["result"]["totals"].spent == 380

    outcome = dash.run_forecast()
    assert outcome.is_right()
    assert [r.category for r in dash.forecast.report.rows] == ["Groceries"]
    assert dash.forecast.report.rows[0].next_month == pytest.approx(420)


@pytest.mark.asyncio
async def test_unchanged_snapshot_keeps_forecast():
    dash = make_dashboard(user_id="u1")
    await dash.upload(STATEMENT)
    dash.run_forecast()
    generation = dash.state.generation

    assert not dash.refresh()
    assert dash.state.generation == generation
    assert dash.forecast.report is not None


def test_switching_user_reloads():
    store = MemoryRecordStore()
    store._save("u1", [{"Date": "2024-03-01", "Amount": 10, "Category": "Food", "Description": ""}])
    dash = make_dashboard(store=store, user_id="u1")
    assert dash.refresh()
    assert len(dash.state.transactions) == 1

    dash.identity.sign_in("u2")
    assert dash.refresh()
    assert dash.state.user_id == "u2"
    assert dash.state.transactions == ()
    assert dash.forecast.state is ForecastState.IDLE


def test_unreadable_store_sets_backend_error(tmp_path):
    (tmp_path / "u1.json").write_text("[broken", encoding="utf-8")
    dash = make_dashboard(store=JsonFileRecordStore(tmp_path), user_id="u1")
    assert not dash.refresh()
    assert "u1.json" in dash.backend_error


@pytest.mark.asyncio
async def test_bound_identity_drives_live_feed():
    store = MemoryRecordStore()
    dash = make_dashboard(store=store)
    dash.bind_identity()

    dash.identity.sign_in("u1")
    assert dash.feed.running
    await store.replace_all("u1", [{"Date": "2024-03-01", "Amount": 10, "Category": "Food", "Description": ""}])
    for _ in range(200):
        if dash.state.transactions:
            break
        await asyncio.sleep(0.01)
    assert len(dash.state.transactions) == 1

    dash.identity.sign_out()
    assert not dash.feed.running
    assert dash.state.transactions == ()
    dash.close()
    await asyncio.sleep(0)


async def wait_until(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.01)


@pytest.mark.asyncio
async def test_sign_out_clears_live_forecast():
    dash = make_dashboard()
    dash.bind_identity()
    dash.identity.sign_in("u1")
    await dash.upload(STATEMENT)
    await wait_until(lambda: dash.forecast.can_run)
    assert dash.run_forecast().is_right()

    dash.identity.sign_out()
    assert dash.forecast.series == {}
    assert not dash.forecast.can_run
    assert dash.forecast.report is None
    assert dash.forecast.state is ForecastState.IDLE
    dash.close()
    await asyncio.sleep(0)


@pytest.mark.asyncio
async def test_sign_out_clears_forecast_on_refresh():
    dash = make_dashboard(user_id="u1")
    await dash.upload(STATEMENT)
    dash.run_forecast()

    dash.identity.sign_out()
    assert not dash.refresh()
    assert dash.state.user_id is None
    assert dash.forecast.series == {}
    assert not dash.forecast.can_run


@pytest.mark.asyncio
async def test_switch_to_unreadable_user_drops_previous_forecast(tmp_path):
    dash = make_dashboard(store=JsonFileRecordStore(tmp_path), user_id="u1")
    await dash.upload(STATEMENT)
    dash.run_forecast()
    assert dash.forecast.report is not None

    (tmp_path / "u2.json").write_text("{broken", encoding="utf-8")
    dash.identity.sign_in("u2")
    assert not dash.refresh()
    assert dash.backend_error
    assert dash.state.transactions == ()
    assert dash.forecast.series == {}
    assert dash.forecast.report is None
    assert not dash.forecast.can_run


@pytest.mark.asyncio
async def test_upload_accepts_raw_bytes():
    dash = make_dashboard(user_id="u1")
    assert await dash.upload(b"\xef\xbb\xbf" + STATEMENT.encode("utf-8")) == 5
    assert len(dash.state.transactions) == 5
