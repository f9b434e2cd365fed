"""
Streamlit Operator Console for Rental Ledger

This is the interface the property manager uses around the monthly
recurring run: check the months, preview, generate, and fix flags.

DESIGN PRINCIPLES:
1. Preview before writing
2. Validation warnings are shown, never hidden
3. Partial failures are listed item by item
4. No hidden actions

The console never bypasses the orchestrator:
- Every run goes through RecurringFlow (year window, audit)
- Flag changes go through the flag service (audit)
"""

import asyncio
import threading
from datetime import date

import streamlit as st

from rental_ledger.config import validate_all_settings
from rental_ledger.models.expense import GenerationOptions
from rental_ledger.orchestrator import RecurringFlow, create_app_components
from rental_ledger.periods.codec import InvalidPeriod, make_period


# Page configuration
st.set_page_config(
    page_title="Rental Ledger",
    page_icon="🏠",
    layout="wide",
    initial_sidebar_state="expanded",
)

# Custom CSS for better UX
st.markdown("""
<style>
    .stButton>button {
        width: 100%;
        margin-top: 10px;
    }
    .success-box {
        padding: 20px;
        background-color: #d4edda;
        border-radius: 10px;
        border-left: 5px solid #28a745;
        margin: 10px 0;
    }
    .error-box {
        padding: 20px;
        background-color: #f8d7da;
        border-radius: 10px;
        border-left: 5px solid #dc3545;
        margin: 10px 0;
    }
</style>
""", unsafe_allow_html=True)


@st.cache_resource
def get_event_loop():
    """
    One event loop for the whole server, running in a background thread.

    CRITICAL: The Firestore async client binds its gRPC channel to the
    loop it was first used on. Every call must therefore run on this
    same loop; a fresh loop per call would reuse a channel whose loop
    is closed.
    """
    loop = asyncio.new_event_loop()
    threading.Thread(target=loop.run_forever, name="rental-ledger-loop", daemon=True).start()
    return loop


def run_async(coro):
    """Helper to run async functions in Streamlit (on the shared loop)."""
    return asyncio.run_coroutine_threadsafe(coro, get_event_loop()).result()


@st.cache_resource
def get_components():
    """Get or create application components (cached)."""
    return create_app_components(use_storage=True)


def period_picker(label: str, default: date, key: str):
    """Year/month inputs side by side. Returns a Period."""
    col1, col2 = st.columns(2)
    with col1:
        year = st.number_input(f"{label} year", min_value=1, value=default.year, step=1, key=f"{key}_year")
    with col2:
        month = st.number_input(f"{label} month", min_value=1, max_value=12, value=default.month, step=1, key=f"{key}_month")
    return make_period(int(year), int(month))


def main():
    """Main application entry point."""
    flow, _ = get_components()

    if not flow.storage_configured:
        st.error(f"❌ {flow.storage_error}. Check the Settings page.")

    # Sidebar navigation
    st.sidebar.title("🏠 Rental Ledger")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigate to:",
        ["🔁 Generate", "📊 Period Summary", "🏷️ Recurring Items", "⚙️ Settings"],
        index=0,
    )

    st.sidebar.markdown("---")
    st.sidebar.markdown(
        """
        **Monthly routine:**
        1. Validate source and target months
        2. Preview with a dry run
        3. Generate

        Incomes are never generated; enter them manually.
        """
    )

    if page == "🔁 Generate":
        render_generate_page(flow)
    elif page == "📊 Period Summary":
        render_summary_page(flow)
    elif page == "🏷️ Recurring Items":
        render_recurring_page(flow)
    elif page == "⚙️ Settings":
        render_settings_page()


def render_generate_page(flow: RecurringFlow):
    """Render the validate / preview / generate page."""
    st.title("🔁 Generate Recurring Expenses")

    source = period_picker("Source", date.today(), "source")
    use_target = st.checkbox("Choose target month (default: month after source)")
    target = period_picker("Target", date.today(), "target") if use_target else None

    options = GenerationOptions(
        source_year=source.year,
        source_month=source.month,
        target_year=target.year if target else None,
        target_month=target.month if target else None,
    )

    col1, col2, col3 = st.columns(3)

    with col1:
        if st.button("🔍 Validate"):
            try:
                result = run_async(flow.validate(options))
            except InvalidPeriod as e:
                st.error(str(e))
            else:
                if result.can_generate:
                    st.success(f"{result.source.key} → {result.target.key}: ready to generate")
                for message in result.errors:
                    st.error(message)
                for message in result.warnings:
                    st.warning(message)

    with col2:
        dry_run = st.button("👀 Preview (dry run)")
    with col3:
        live_run = st.button("✅ Generate", type="primary")

    if dry_run or live_run:
        options.dry_run = dry_run
        with st.spinner("Generating..."):
            try:
                result = run_async(flow.generate(options, is_user_action=True))
            except InvalidPeriod as e:
                st.error(str(e))
                st.stop()

        if not result.success:
            st.markdown(f"""
            <div class="error-box">
                <h4>❌ Generation Failed</h4>
                <p>{result.error}</p>
            </div>
            """, unsafe_allow_html=True)
            st.stop()

        summary = result.summary
        heading = "Preview" if summary.dry_run else "Generated"
        st.markdown(f"""
        <div class="success-box">
            <h4>{heading}: {summary.source_period} → {summary.target_period}</h4>
            <p><strong>Created:</strong> {result.created} &nbsp;
               <strong>Skipped:</strong> {result.skipped} &nbsp;
               <strong>Errors:</strong> {len(result.errors)}</p>
        </div>
        """, unsafe_allow_html=True)

        if result.items:
            st.dataframe([item.to_dict() for item in result.items])
        if result.errors:
            st.subheader("Errors")
            st.dataframe([error.to_dict() for error in result.errors])


def render_summary_page(flow: RecurringFlow):
    """Render the per-period summary page."""
    st.title("📊 Period Summary")

    period = period_picker("Period", date.today(), "summary")
    if st.button("Show summary", type="primary"):
        try:
            summary = run_async(flow.summarize(period.year, period.month))
        except InvalidPeriod as e:
            st.error(str(e))
            st.stop()

        if not summary.success:
            st.error(summary.error)
            st.stop()

        col1, col2, col3 = st.columns(3)
        col1.metric("Properties", summary.properties)
        col2.metric("Expenses", summary.total_expenses)
        col3.metric("Recurring", summary.total_recurring_expenses)

        for entry in summary.properties_summary:
            with st.expander(f"{entry.property_name}: {entry.total_expenses} ({entry.recurring_expenses} recurring)"):
                if entry.error:
                    st.error(entry.error)
                elif entry.expenses:
                    st.dataframe([e.to_dict() for e in entry.expenses])


def render_recurring_page(flow: RecurringFlow):
    """Render the recurring flag page."""
    st.title("🏷️ Recurring Items")

    period = period_picker("Period", date.today(), "recurring")
    try:
        listing = run_async(flow.list_recurring(period.year, period.month))
    except InvalidPeriod as e:
        st.error(str(e))
        st.stop()

    if not listing.success:
        st.error(listing.error)
    elif not listing.properties_data:
        st.info(f"No recurring expenses in {period.key}")
    else:
        st.markdown(f"**{listing.total_count}** recurring item(s) in **{listing.properties_with_recurring}** properties")
        for group in listing.properties_data:
            with st.expander(f"{group.property_name or group.property_id} ({group.count})"):
                if group.error:
                    st.error(group.error)
                else:
                    st.dataframe(group.expenses)

    st.markdown("---")
    st.subheader("Change a flag")

    property_id = st.text_input("Property id")
    expense_id = st.text_input("Expense id")
    is_recurring = st.toggle("Recurring", value=True)

    if st.button("Save flag", type="primary") and property_id and expense_id:
        try:
            result = run_async(
                flow.set_recurring(property_id, period.year, period.month, expense_id, is_recurring)
            )
        except InvalidPeriod as e:
            st.error(str(e))
            st.stop()
        if result.success:
            st.success(result.message)
        else:
            st.error(result.error)


def render_settings_page():
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### Connection Status")

    status = validate_all_settings()

    services = [
        ("Firestore (Ledger)", "firestore"),
        ("Google Sheets (Audit log)", "google_sheets"),
        ("Application", "app"),
    ]

    for name, key in services:
        if status.get(key, False):
            st.success(f"✅ {name} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    st.markdown("---")
    st.markdown("### Configuration")
    st.markdown(
        "To configure the application, create a `.env` file. "
        "See `.env.example` for the required variables."
    )


if __name__ == "__main__":
    main()
