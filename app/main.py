"""
Streamlit Frontend for Expense Journal

The screens a user touches every day: take a photo of a purchase,
enter the amount, and see where the month's budget stands.

DESIGN PRINCIPLES:
1. Simple, clear interface
2. One obvious action per screen
3. Clear error messages in simple language
4. Visual feedback for all operations
5. Views are recomputed on every render, never cached
"""

import asyncio
from datetime import date
from decimal import Decimal
from uuid import UUID

import streamlit as st

from expense_journal.config import get_settings, validate_all_settings
from expense_journal.journal import (
    ExpenseJournal,
    JournalError,
    create_app_components,
)
from expense_journal.models.expense import ExpenseRecord
from expense_journal.services.image import ImageStorageError, LocalImageStorage
from expense_journal.services.storage import NotFoundError, StorageError


# Page configuration
st.set_page_config(
    page_title="Expense Journal",
    page_icon="🧾",
    layout="wide",
    initial_sidebar_state="expanded",
)

st.markdown("""
<style>
    .stButton>button {
        width: 100%;
        margin-top: 10px;
    }
    .today-badge {
        background-color: #28a745;
        color: white;
        padding: 2px 8px;
        border-radius: 8px;
        font-size: 0.8em;
    }
    .big-number {
        font-size: 2.5em;
        font-weight: bold;
        color: #2c3e50;
    }
    .over-budget {
        color: #dc3545;
    }
</style>
""", unsafe_allow_html=True)


def run_async(coro):
    """Helper to run async functions in Streamlit."""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@st.cache_resource
def get_journal() -> ExpenseJournal:
    """Get or create the journal (cached)."""
    return create_app_components()


def format_amount(amount: Decimal) -> str:
    return f"{amount:,.2f}"


def image_source(journal: ExpenseJournal, ref: str):
    """What st.image needs for a stored reference."""
    storage = journal.image_storage
    if isinstance(storage, LocalImageStorage):
        return str(storage.path_for(ref))
    return ref


def main():
    """Main application entry point."""
    journal = get_journal()

    st.sidebar.title("🧾 Expense Journal")
    for message in journal.fallbacks:
        st.sidebar.error(f"⚠️ {message}")
    st.sidebar.markdown("---")

    page = st.sidebar.radio(
        "Navigate to:",
        ["📒 Journal", "📊 Budget", "📷 Add Expense", "⚙️ Settings"],
        index=0,
    )

    if page == "📒 Journal":
        render_journal_page(journal)
    elif page == "📊 Budget":
        render_budget_page(journal)
    elif page == "📷 Add Expense":
        render_add_page(journal)
    elif page == "⚙️ Settings":
        render_settings_page(journal)


def render_expense_row(journal: ExpenseJournal, record: ExpenseRecord, key_prefix: str):
    col1, col2, col3 = st.columns([1, 4, 1])
    with col1:
        try:
            st.image(image_source(journal, record.display_thumbnail), width=80)
        except Exception:
            st.caption("(photo unavailable)")
    with col2:
        st.markdown(f"**{record.label}** - {format_amount(record.amount)}")
    with col3:
        if st.button("🗑️", key=f"{key_prefix}-{record.id}", help="Delete this expense"):
            delete_expense(journal, record.id)


def delete_expense(journal: ExpenseJournal, expense_id: UUID):
    try:
        run_async(journal.delete_expense(expense_id))
        st.rerun()
    except NotFoundError:
        st.warning("That expense was already deleted.")
    except StorageError as e:
        st.error(f"Could not delete: {e}")


def render_journal_page(journal: ExpenseJournal):
    """Render the expense list, grouped by day or by month."""
    st.title("📒 Journal")

    view = st.radio("Group by", ["Day", "Month"], horizontal=True)
    today = date.today()

    try:
        if view == "Day":
            groups = run_async(journal.daily_view(today))
        else:
            groups = run_async(journal.monthly_view())
    except StorageError as e:
        st.error(f"Could not load expenses: {e}")
        return

    if not groups:
        st.info("No expenses yet. Use 'Add Expense' to log your first one.")
        return

    if view == "Day":
        for group in groups:
            badge = ' <span class="today-badge">Today</span>' if group.is_today else ""
            st.markdown(
                f"### {group.date.strftime('%d %B %Y')}{badge} "
                f"- {format_amount(group.total_amount)}",
                unsafe_allow_html=True,
            )
            for record in group.records:
                render_expense_row(journal, record, "day")
    else:
        for group in groups:
            period_name = group.period.first_day.strftime("%B %Y")
            with st.expander(f"{period_name} - {format_amount(group.total_amount)}"):
                for bucket in group.day_groups:
                    st.markdown(f"**{bucket.day}** - {format_amount(bucket.total_amount)}")
                    for record in bucket.records:
                        render_expense_row(journal, record, "month")


def render_budget_page(journal: ExpenseJournal):
    """Render the budget snapshot and history."""
    st.title("📊 Budget")
    today = date.today()

    try:
        snapshot = run_async(journal.current_budget(today))
        history = run_async(journal.budget_history(today))
    except StorageError as e:
        st.error(f"Could not load budget: {e}")
        return

    css_class = "big-number over-budget" if snapshot.is_over_budget else "big-number"
    st.markdown(f"#### Remaining in {snapshot.period.first_day.strftime('%B %Y')}")
    st.markdown(
        f'<div class="{css_class}">{format_amount(snapshot.remaining)}</div>',
        unsafe_allow_html=True,
    )
    st.progress(snapshot.percentage / 100)
    st.markdown(
        f"Spent **{format_amount(snapshot.spent)}** of **{format_amount(snapshot.total)}** "
        f"({snapshot.percentage:.0f}%)"
    )

    st.markdown("---")
    st.subheader("History")
    rows = [
        {
            "Month": item.period.first_day.strftime("%b %Y"),
            "Spent": format_amount(item.spent),
            "Budget": format_amount(item.total),
            "Expenses": item.expense_count,
        }
        for item in history
        if item.has_data
    ]
    if rows:
        st.table(rows)
    else:
        st.info("No spending recorded yet.")


def render_add_page(journal: ExpenseJournal):
    """Render the add-expense form."""
    st.title("📷 Add Expense")
    settings = get_settings().budget

    source = st.radio("Photo", ["Camera", "Upload"], horizontal=True)
    if source == "Camera":
        photo = st.camera_input("Take a photo of the receipt or item")
    else:
        photo = st.file_uploader(
            "Choose a photo",
            type=["jpg", "jpeg", "png", "webp"],
        )

    amount = st.number_input("Amount *", min_value=0.0, step=0.01, format="%.2f")
    label = st.text_input("Label", placeholder=settings.default_label)
    expense_date = st.date_input("Date", value=date.today())

    if st.button("💾 Save Expense", type="primary"):
        if photo is None:
            st.error("Please take or choose a photo first.")
            return
        try:
            record = run_async(journal.add_expense(
                image_bytes=photo.getvalue(),
                amount=Decimal(str(amount)),
                label=label,
                expense_date=expense_date,
            ))
        except JournalError as e:
            st.error(f"Please check the details: {e}")
            return
        except (ImageStorageError, StorageError) as e:
            st.error(f"Could not save the expense: {e}")
            return

        st.success(f"Saved {record.label} - {format_amount(record.amount)}")


def render_settings_page(journal: ExpenseJournal):
    """Render budget settings and configuration status."""
    st.title("⚙️ Settings")

    config = run_async(journal.budget_config())

    st.markdown("### Default monthly budget")
    default_amount = st.number_input(
        "Amount",
        min_value=0.0,
        value=float(config.default_amount),
        step=50.0,
        format="%.2f",
    )
    if st.button("Save default budget"):
        try:
            run_async(journal.set_default_budget(Decimal(str(default_amount))))
            st.success("Default budget saved.")
        except (JournalError, StorageError) as e:
            st.error(str(e))

    st.markdown("### Budget for a specific month")
    today = date.today()
    col1, col2, col3 = st.columns(3)
    with col1:
        month = st.number_input("Month", min_value=1, max_value=12, value=today.month)
    with col2:
        year = st.number_input("Year", min_value=2000, max_value=3000, value=today.year)
    with col3:
        override_amount = st.number_input("Budget", min_value=0.0, step=50.0, format="%.2f")
    if st.button("Save month budget"):
        try:
            run_async(journal.set_budget_override(
                int(month), int(year), Decimal(str(override_amount))
            ))
            st.success("Month budget saved.")
        except (JournalError, StorageError) as e:
            st.error(str(e))

    st.markdown("---")
    st.markdown("### Connection Status")

    for message in journal.fallbacks:
        st.error(f"⚠️ {message}")

    status = validate_all_settings()
    services = [
        ("Google Sheets (Storage)", "google_sheets"),
        ("Cloudinary (Photos)", "cloudinary"),
    ]
    for name, key in services:
        if status.get(key, False):
            st.success(f"✅ {name} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.warning(f"⚠️ {name} - {error}")

    app_settings = get_settings().app
    st.caption(
        f"Environment: {app_settings.app_environment} | "
        f"Storage: {app_settings.storage_backend}"
    )
    if app_settings.debug_mode:
        st.json(status)


if __name__ == "__main__":
    main()
