import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import asyncio

import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
import streamlit as st

from ledgerlens.config import load_settings
from ledgerlens.dashboard import Dashboard
from ledgerlens.domain import DAY_NAMES, MONTH_NAMES, HealthStatus, PeriodSelection, Scope
from ledgerlens.errors import CsvFormatError, ForecastBusyError, StoreUnavailableError
from ledgerlens.logging_setup import configure_logging, get_logger
from ledgerlens.periods import available_years

st.set_page_config(page_title="Ledgerlens", layout="wide")

settings = load_settings()
configure_logging(settings.log_level)
logger = get_logger("ledgerlens.app")

if "dashboard" not in st.session_state:
    st.session_state.dashboard = Dashboard(settings=settings)
dash: Dashboard = st.session_state.dashboard

st.sidebar.markdown("### 👤 Profile")
user_id = st.sidebar.text_input("User ID", value=st.session_state.get("user_id", ""))
st.session_state["user_id"] = user_id
if user_id.strip():
    dash.identity.sign_in(user_id)
    st.sidebar.caption(f"Signed in as {user_id.strip()}")
else:
    dash.identity.sign_out()
if settings.local_only:
    st.sidebar.caption("Local-only mode: data stays on this machine.")

dash.refresh()
if dash.backend_error:
    st.error(f"Record store unavailable: {dash.backend_error}. Please sign in again.")

transactions = dash.state.transactions

menu = st.sidebar.radio(
    "Menu",
    ["🏠 Overview", "📊 Analysis", "🧮 Manager", "🔮 Prediction", "📂 Upload"]
)


def money(v):
    return f"${v:,.2f}"


def tx_to_df(tx_list):
    return pd.DataFrame([
        {
            "Date": t.iso_date or "N/A",
            "Description": t.description,
            "Category": t.category or "",
            "Amount": money(t.amount),
        }
        for t in tx_list
    ])


def period_controls(scope: Scope, key: str):
    years = available_years(transactions)
    default = dash.views.resolve_selection(transactions, scope, None)
    if default is None:
        st.info("None of the uploaded records carry a readable date.")
        st.stop()
    year = st.selectbox("Year", years, index=years.index(default.year) if default.year in years else 0, key=f"{key}_year")
    month = week = None
    if scope in (Scope.MONTHLY, Scope.WEEKLY):
        month_name = st.selectbox("Month", MONTH_NAMES, index=(default.month or 1) - 1, key=f"{key}_month")
        month = MONTH_NAMES.index(month_name) + 1
    if scope is Scope.WEEKLY:
        week = st.selectbox("Week of month", [1, 2, 3, 4, 5], key=f"{key}_week")
    return PeriodSelection(year=year, month=month, week=week)


if not dash.identity.is_authenticated() and menu != "📂 Upload":
    st.info("Enter a user ID in the sidebar to load your statements.")
    st.stop()

if menu == "🏠 Overview":
    st.title("🏠 Overview")
    if not transactions:
        st.info("No bank statement data available. Please upload a CSV on the Upload page.")
        st.stop()

    report = dash.view(Scope.MONTHLY)
    if report["no_data"]:
        st.info("None of the uploaded records carry a readable date.")
        st.stop()
    result = report["result"]
    st.subheader(report["title"])

    totals = result["totals"]
    k1, k2, k3 = st.columns(3)
    with k1:
        st.metric("Total Income", money(totals.income))
    with k2:
        st.metric("Total Spent", money(totals.spent))
    with k3:
        st.metric("Net Change", money(totals.net))

    health = result["health"]
    if health.status is HealthStatus.CRITICAL:
        st.error(f"Critical: expenditure ({money(health.spent)}) exceeds income ({money(health.income)}). Net change: {money(health.net)}.")
    elif health.status is HealthStatus.MONITOR_OVERSPEND:
        st.warning(f"Monitor: expenditure ({health.spent_percentage}%) is above the 50% threshold. Net change: {money(health.net)}.")
    elif health.status is HealthStatus.MONITOR_NO_INCOME:
        st.warning(f"Monitor: no income recorded for this period. Spending is {money(health.spent)}.")
    else:
        st.success(f"Healthy: total expenditure ({health.spent_percentage}%) is well managed. Net change: {money(health.net)}.")

    st.subheader("📊 Transactions this period")
    if result["subset"]:
        st.dataframe(tx_to_df(result["subset"]), use_container_width=True, hide_index=True)
    else:
        st.info("No data available for this selection.")

elif menu == "📊 Analysis":
    st.title("📊 Financial Analysis")
    if not transactions:
        st.info("No bank statement data available. Please upload a CSV on the Upload page.")
        st.stop()

    scope = Scope(st.selectbox("Scope", [s.value for s in Scope], index=1, format_func=str.title))
    selection = period_controls(scope, "analysis")
    report = dash.view(scope, selection)
    result = report["result"]
    st.subheader(report["title"])

    col1, col2 = st.columns(2)
    with col1:
        breakdown = result["breakdown"]
        if breakdown:
            df_cat = pd.DataFrame(breakdown, columns=["Category", "Amount", "Percentage"])
            fig_cat = px.pie(df_cat, values="Amount", names="Category", title="Spending by Category")
            st.plotly_chart(fig_cat, use_container_width=True)
        else:
            st.info("No expenses found for this period.")
    with col2:
        trend = result["trend"]
        titles = {Scope.YEARLY: "Monthly Spending Trend", Scope.MONTHLY: "Weekly Spending Trend", Scope.WEEKLY: "Daily Spending Trend"}
        if trend:
            df_trend = pd.DataFrame(trend, columns=["Period", "Amount"])
            fig_trend = px.bar(df_trend, x="Period", y="Amount", title=titles[scope], template="plotly_dark")
            st.plotly_chart(fig_trend, use_container_width=True)
        else:
            st.info("No spending data to visualize trends.")

    scatter = result["scatter"]
    if scatter:
        df_sc = pd.DataFrame(scatter, columns=["Day", "Amount", "Category"])
        df_sc["Day"] = df_sc["Day"].map(lambda d: DAY_NAMES[d])
        fig_sc = px.scatter(df_sc, x="Day", y="Amount", color="Category", title="Spending by Day of Week",
                            category_orders={"Day": list(DAY_NAMES)})
        st.plotly_chart(fig_sc, use_container_width=True)
    else:
        st.info("No expense transactions to plot.")

    if result["subset"]:
        st.dataframe(tx_to_df(result["subset"]), use_container_width=True, hide_index=True)
    else:
        st.info("No data available for this selection.")

elif menu == "🧮 Manager":
    st.title("🧮 Spending Manager")
    if not transactions:
        st.info("No bank statement data available. Please upload a CSV on the Upload page.")
        st.stop()

    scope = Scope(st.radio("Scope", [Scope.MONTHLY.value, Scope.YEARLY.value], format_func=str.title, horizontal=True))
    selection = period_controls(scope, "manager")
    report = dash.view(scope, selection)
    result = report["result"]
    st.subheader(report["title"])

    st.subheader("🍸 Discretionary spending")
    waste = result["waste"]
    if waste.is_empty:
        st.success("Outstanding! No highly discretionary spending was flagged for this period.")
    else:
        st.markdown(f"A total of **{money(waste.total)}** was spent on highly discretionary activities this period.")
        for entry in waste.entries:
            st.markdown(f"**{entry.reason}** · {money(entry.amount)} ({entry.percentage}%)")
            st.progress(min(1.0, entry.percentage / 100))

    st.subheader("📈 Category spending trend")
    category_trend = result["category_trend"]
    if category_trend.insufficient:
        st.info("Insufficient data for trend visualization (need at least two periods).")
    else:
        fig_lines = go.Figure()
        for name, values in category_trend.series:
            fig_lines.add_trace(go.Scatter(x=list(category_trend.periods), y=list(values), mode="lines+markers", name=name))
        fig_lines.update_layout(template="plotly_dark", margin=dict(t=30, b=10, l=10, r=10))
        st.plotly_chart(fig_lines, use_container_width=True)

elif menu == "🔮 Prediction":
    st.title("🔮 Spending Forecast")
    service = dash.forecast
    st.caption(f"Linear trend per category, {len(service.series)} categories with two or more months of spending.")

    if st.button("Run Forecast", disabled=not service.can_run, key="btn_run_forecast"):
        try:
            outcome = dash.run_forecast()
        except ForecastBusyError as e:
            st.warning(str(e))
        else:
            if outcome.is_left():
                st.error(f"Forecast failed: {outcome.get_error()['message']}. You can retry.")

    if service.report is not None and service.report.rows:
        fr = service.report
        df_fc = pd.DataFrame(
            [(r.category, money(r.next_month), money(r.next_year), f"{r.mse:.2f}") for r in fr.rows],
            columns=["Category", "Next Month Forecast", "Next 12-Month Projection", "MSE Loss"],
        )
        df_fc.loc[len(df_fc)] = ["Total Projected Expenditure", money(fr.total_next_month), money(fr.total_next_year), "N/A"]
        st.dataframe(df_fc, use_container_width=True, hide_index=True)
    elif not service.can_run:
        st.info("Need at least two months of spending in a category to forecast.")

elif menu == "📂 Upload":
    st.title("📂 Upload Statement")
    if not dash.identity.is_authenticated():
        st.info("Enter a user ID in the sidebar before uploading.")
        st.stop()
    st.caption("CSV with Date, Category, Amount and Description columns. Uploading replaces your stored statements.")
    uploaded = st.file_uploader("Bank statement", type=["csv"])
    if uploaded is not None and st.button("Upload", key="btn_upload"):
        try:
            count = asyncio.run(dash.upload(uploaded.getvalue()))
        except CsvFormatError as e:
            st.error(f"Error: {e}")
        except StoreUnavailableError as e:
            logger.error("Upload failed: %s", e)
            st.error(f"Error: failed to save data ({e}).")
        else:
            st.success(f"Uploaded {count} records.")
