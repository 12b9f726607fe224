"""
Streamlit Frontend for the Expense Tracker

This is the user interface the household interacts with daily.

DESIGN PRINCIPLES:
1. Simple, clear interface
2. Explicit confirmation at every step
3. Clear error messages in simple language
4. Visual feedback for all operations
5. No hidden actions

The UI enforces the human-in-the-loop principle:
- User sees what was read from the receipt
- User confirms or edits
- Nothing is saved without explicit "Save" action
"""

import asyncio
from datetime import date, timedelta
from decimal import Decimal
from uuid import uuid4

import streamlit as st

from expense_tracker.audit import create_correlation_id
from expense_tracker.models.ledger import Frequency, ObligationKind, Profile
from expense_tracker.models.receipt import LineItem, ParsedBill, ParseEmpty
from expense_tracker.orchestrator import (
    ReceiptCaptureFlow,
    ReportFlow,
    SavingsFlow,
    SettlementFlow,
    create_app_components,
)
from expense_tracker.recurring import InvalidAmountError
from expense_tracker.reports import format_money
from expense_tracker.services.ocr import OCRError
from expense_tracker.services.storage import EXPENSE_PROFILES, DuplicateError, StorageError


# Page configuration
st.set_page_config(
    page_title="Expense Tracker",
    page_icon="💰",
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
    .warning-box {
        padding: 20px;
        background-color: #fff3cd;
        border-radius: 10px;
        border-left: 5px solid #ffc107;
        margin: 10px 0;
    }
    .big-number {
        font-size: 2.5em;
        font-weight: bold;
        color: #2c3e50;
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
def get_components():
    """Get or create application components (cached)."""
    return create_app_components(use_storage=True)


def load_profiles(backend) -> list[Profile]:
    """Profiles in the store; a first run gets a default personal profile."""
    rows = run_async(backend.select(EXPENSE_PROFILES, {"is_active": True}, order_by="name"))
    if not rows:
        profile = Profile(user_id=uuid4(), name="Personal")
        run_async(backend.insert(EXPENSE_PROFILES, profile.model_dump(mode="json")))
        return [profile]
    return [Profile.model_validate(row) for row in rows]


def main():
    """Main application entry point."""
    receipt_flow, settlement_flow, report_flow, savings_flow, backend = get_components()

    st.sidebar.title("💰 Expense Tracker")
    st.sidebar.markdown("---")

    profiles = load_profiles(backend)
    selected = st.sidebar.multiselect(
        "Profiles",
        options=profiles,
        default=profiles[:1],
        format_func=lambda p: p.name,
    )
    profile_ids = [p.id for p in selected] or [profiles[0].id]

    page = st.sidebar.radio(
        "Navigate to:",
        ["📤 Scan Receipt", "🔁 Recurring Bills", "🎯 Savings Goals", "📊 Reports", "⚙️ Settings"],
        index=0,
    )

    st.sidebar.markdown("---")
    st.sidebar.markdown(
        """
        **How to use:**
        1. Scan a receipt photo
        2. Review and correct the details
        3. Confirm to save

        Mark recurring bills as paid from the **Recurring Bills** page.
        """
    )

    if page == "📤 Scan Receipt":
        render_receipt_page(receipt_flow, profile_ids[0])
    elif page == "🔁 Recurring Bills":
        render_recurring_page(settlement_flow, profile_ids)
    elif page == "🎯 Savings Goals":
        render_savings_page(savings_flow, profile_ids)
    elif page == "📊 Reports":
        render_reports_page(report_flow, profile_ids)
    elif page == "⚙️ Settings":
        render_settings_page()


def render_receipt_page(receipt_flow: ReceiptCaptureFlow, profile_id):
    """Render the receipt capture page."""
    st.title("📤 Scan Receipt")
    st.markdown("Take a photo of your receipt and upload it here.")

    if "receipt_state" not in st.session_state:
        st.session_state.receipt_state = "idle"  # idle, reviewing, saved
    if "parsed_bill" not in st.session_state:
        st.session_state.parsed_bill = None
    if "correlation_id" not in st.session_state:
        st.session_state.correlation_id = None

    uploaded_file = st.file_uploader(
        "Choose a receipt photo",
        type=["jpg", "jpeg", "png", "webp"],
        help="Take a clear, well-lit photo of the whole receipt",
    )

    if uploaded_file and st.session_state.receipt_state == "idle":
        if st.button("🔍 Read Receipt", type="primary"):
            st.session_state.correlation_id = create_correlation_id()
            with st.spinner("Reading your receipt... Please wait."):
                try:
                    text = run_async(
                        receipt_flow.extract_text(
                            uploaded_file.read(),
                            filename=uploaded_file.name,
                            correlation_id=st.session_state.correlation_id,
                        )
                    )
                    result = run_async(
                        receipt_flow.parse(text, st.session_state.correlation_id)
                    )
                except OCRError as e:
                    st.error(f"Could not read the photo: {e}")
                    st.stop()

            if isinstance(result, ParseEmpty):
                st.warning(f"📷 {result.reason}. Please take a clearer photo and try again.")
                st.stop()

            st.session_state.parsed_bill = result.bill
            st.session_state.raw_text = result.raw_text
            st.session_state.receipt_state = "reviewing"
            st.rerun()

    if st.session_state.receipt_state == "reviewing":
        bill: ParsedBill = st.session_state.parsed_bill

        st.markdown("---")
        st.subheader("📋 Review Receipt")
        st.markdown("*You can edit any field before saving*")

        col1, col2 = st.columns(2)
        with col1:
            shop = st.text_input("Shop", value=bill.shop)
            bill_date = st.date_input("Date", value=bill.parsed_date or date.today())
        with col2:
            subtotal = st.text_input("Subtotal", value=str(bill.subtotal or ""))
            gst = st.text_input("GST", value=str(bill.gst or ""))
            total = st.text_input("Total *", value=str(bill.total or ""))

        edited_items = st.data_editor(
            [item.model_dump() for item in bill.items],
            num_rows="dynamic",
            use_container_width=True,
            key="receipt_items",
        )

        with st.expander("📝 Recognised text"):
            st.text(st.session_state.get("raw_text", ""))

        try:
            edited = ParsedBill(
                shop=shop,
                parsed_date=bill_date,
                total=Decimal(total) if total.strip() else None,
                subtotal=Decimal(subtotal) if subtotal.strip() else None,
                gst=Decimal(gst) if gst.strip() else None,
                items=[LineItem(**row) for row in edited_items if row.get("item_name")],
            )
        except (ArithmeticError, ValueError) as e:
            st.error(f"Please check the numbers: {e}")
            st.stop()

        validation, message = run_async(
            receipt_flow.validate(edited, profile_id, st.session_state.correlation_id)
        )
        box = "success-box" if validation.is_valid and not validation.warnings else "warning-box"
        st.markdown(
            f'<div class="{box}">{message.replace(chr(10), "<br>")}</div>',
            unsafe_allow_html=True,
        )

        col1, col2 = st.columns(2)
        with col1:
            if st.button("✅ Confirm and Save", type="primary", disabled=not validation.is_valid):
                try:
                    saved = run_async(
                        receipt_flow.confirm_and_save(
                            profile_id=profile_id,
                            bill=edited,
                            raw_text=st.session_state.get("raw_text"),
                            correlation_id=st.session_state.correlation_id,
                        )
                    )
                    st.session_state.saved_bill = saved
                    st.session_state.receipt_state = "saved"
                    st.rerun()
                except (InvalidAmountError, StorageError) as e:
                    st.error(f"Failed to save: {e}")

        with col2:
            if st.button("❌ Discard / Start Over"):
                run_async(
                    receipt_flow.reject(
                        reason="User discarded",
                        correlation_id=st.session_state.correlation_id,
                    )
                )
                st.session_state.receipt_state = "idle"
                st.session_state.parsed_bill = None
                st.rerun()

    if st.session_state.receipt_state == "saved":
        saved = st.session_state.saved_bill
        st.markdown(f"""
        <div class="success-box">
            <h3>✅ Receipt Saved</h3>
            <p><strong>Shop:</strong> {saved.shop_name or "Unknown"}</p>
            <p><strong>Total:</strong> {format_money(saved.total)}</p>
            <p><strong>Items:</strong> {len(saved.items)}</p>
        </div>
        """, unsafe_allow_html=True)

        if st.button("📤 Scan Another Receipt"):
            st.session_state.receipt_state = "idle"
            st.session_state.parsed_bill = None
            st.session_state.saved_bill = None
            st.rerun()


def render_recurring_page(settlement_flow: SettlementFlow, profile_ids):
    """Render recurring bills: pending list, mark paid, add new."""
    st.title("🔁 Recurring Bills")
    today = date.today()
    service = settlement_flow.obligations

    for reminder in run_async(service.due_reminders(profile_ids, today)):
        st.info(f"🔔 {reminder.title} on {reminder.due_date.strftime('%d %B %Y')}")

    st.subheader("Due this month")
    pending = run_async(service.pending_bills(profile_ids, today.year, today.month))
    if not pending:
        st.success("Nothing left to pay this month 🎉")
    for bill in pending:
        st.markdown(
            f"**{bill.name}** · due {bill.due_date.strftime('%d %b')} · "
            f"{format_money(bill.amount) if bill.amount is not None else 'amount varies'}"
        )

    st.markdown("---")
    st.subheader("All recurring bills")
    for obligation in run_async(service.list_obligations(profile_ids)):
        col1, col2, col3 = st.columns([3, 2, 1])
        with col1:
            status = "" if obligation.is_active else " (paused)"
            overdue = " ⚠️ overdue" if obligation.next_due_date < today else ""
            st.markdown(
                f"**{obligation.name}**{status} · {obligation.frequency.value} · "
                f"next {obligation.next_due_date.isoformat()}{overdue}"
            )
        with col2:
            amount = st.text_input(
                "Amount paid",
                value=str(obligation.amount or ""),
                key=f"amount-{obligation.id}",
                label_visibility="collapsed",
            )
        with col3:
            if st.button("Mark paid", key=f"pay-{obligation.id}", disabled=not obligation.is_active):
                result, message = run_async(settlement_flow.mark_paid(obligation.id, amount))
                (st.success if result else st.error)(message)

        if st.button(
            "Resume" if not obligation.is_active else "Pause",
            key=f"toggle-{obligation.id}",
        ):
            run_async(service.set_active(obligation.id, not obligation.is_active))
            st.rerun()

    with st.expander("➕ Add recurring bill"):
        with st.form("add-obligation"):
            name = st.text_input("Bill name (e.g. Rent, Internet)")
            amount = st.number_input("Amount", min_value=0.0, step=1.0)
            frequency = st.selectbox("Frequency", list(Frequency), index=2, format_func=lambda f: f.value.title())
            start = st.date_input("Start date", value=today)
            due_day = st.number_input("Due day of month (0 = same as start)", min_value=0, max_value=31)
            variable = st.checkbox("Amount varies each time")
            if st.form_submit_button("Save"):
                try:
                    run_async(service.create_obligation(
                        profile_id=profile_ids[0],
                        name=name,
                        start_date=start,
                        kind=ObligationKind.EXPENSE,
                        amount=Decimal(str(amount)) if amount else None,
                        frequency=frequency,
                        due_day_of_month=int(due_day) or None,
                        is_variable_amount=variable,
                    ))
                    st.rerun()
                except DuplicateError as e:
                    st.error(str(e))
                except ValueError as e:
                    st.error(f"Please check the details: {e}")


def render_savings_page(savings_flow: SavingsFlow, profile_ids):
    """Render savings goals with progress bars and an add-money box."""
    st.title("🎯 Savings Goals")
    service = savings_flow.goals

    goals = run_async(service.list_goals(profile_ids))
    if not goals:
        st.info("No savings goals yet. Add one below.")

    for goal in goals:
        with st.container(border=True):
            col1, col2 = st.columns([4, 1])
            with col1:
                deadline = f" · due {goal.deadline.strftime('%d %b %Y')}" if goal.deadline else ""
                st.markdown(f"**{goal.name}**{deadline}")
                st.progress(float(goal.progress_percent) / 100)
                st.caption(
                    f"{format_money(goal.current_amount)} of {format_money(goal.target_amount)} "
                    f"({goal.progress_percent}%) · {format_money(goal.remaining)} to go"
                )
            with col2:
                if st.button("🗑️ Delete", key=f"delete-goal-{goal.id}"):
                    run_async(service.delete_goal(goal.id))
                    st.rerun()

            amount = st.text_input("Add to savings", value="100", key=f"add-{goal.id}")
            if st.button("+ Add money", key=f"add-money-{goal.id}"):
                updated, message = run_async(savings_flow.add_money(goal.id, amount))
                (st.success if updated else st.error)(message)

    with st.expander("➕ New goal"):
        with st.form("add-goal"):
            name = st.text_input("Goal name (e.g. New Car)")
            target = st.text_input("Target amount", placeholder="5000")
            current = st.text_input("Already saved", placeholder="0")
            has_deadline = st.checkbox("Set a deadline")
            deadline = st.date_input("Deadline", value=date.today() + timedelta(days=365))
            if st.form_submit_button("Add goal"):
                try:
                    run_async(service.create_goal(
                        profile_id=profile_ids[0],
                        name=name,
                        target_amount=target,
                        current_amount=current,
                        deadline=deadline if has_deadline else None,
                    ))
                    st.rerun()
                except InvalidAmountError as e:
                    st.error(f"❌ {e}")
                except ValueError as e:
                    st.error(f"Please check the details: {e}")


def render_reports_page(report_flow: ReportFlow, profile_ids):
    """Render the dashboard and report export."""
    st.title("📊 Reports")
    today = date.today()

    stats = run_async(report_flow.dashboard(profile_ids, today))
    col1, col2, col3 = st.columns(3)
    col1.metric("Spent this month", format_money(stats.total_expense))
    col2.metric("Budget left", format_money(stats.remaining_balance))
    col3.metric("Safe to spend per day", format_money(stats.daily_safe_spend))
    st.progress(int(stats.progress_percent))

    st.markdown("---")
    col1, col2, col3 = st.columns(3)
    with col1:
        report_type = st.radio("Report", ["Monthly", "Yearly"], horizontal=True)
    with col2:
        year = st.number_input("Year", min_value=2000, max_value=2100, value=today.year)
    with col3:
        month = st.number_input("Month", min_value=1, max_value=12, value=today.month,
                                disabled=report_type == "Yearly")

    report = run_async(report_flow.build(
        profile_ids, int(year), int(month) if report_type == "Monthly" else None
    ))

    summary = report.summary
    st.markdown(f"### {report.period.label}")
    st.markdown(
        f"Income **{format_money(summary.total_income)}** · "
        f"Expenses **{format_money(summary.total_expense)}** · "
        f"Net **{format_money(summary.net_savings)}** · "
        f"{summary.transaction_count} transactions"
    )

    export_format = st.radio("Format", ["csv", "json"], horizontal=True,
                             format_func=lambda f: "CSV (Excel)" if f == "csv" else "JSON")
    if st.button("⬇️ Prepare download"):
        content, mime, filename = run_async(report_flow.export(report, export_format))
        st.download_button("Download", content, file_name=filename, mime=mime)

    st.markdown("---")
    st.subheader("🛒 Price comparison")
    comparisons = run_async(report_flow.price_comparison(profile_ids, since=today - timedelta(days=90)))
    if not comparisons:
        st.caption("Items bought at two or more shops in the last 90 days will show up here.")
    for comparison in comparisons[:20]:
        with st.expander(
            f"{comparison.item_name}: {format_money(comparison.cheapest_price)} to "
            f"{format_money(comparison.most_expensive_price)}"
        ):
            for shop in comparison.shops:
                st.write(f"{shop['shop_name']}: {format_money(shop['unit_price'])} ({shop['bill_date'] or 'no date'})")


def render_settings_page():
    """Render the settings page."""
    st.title("⚙️ Settings")

    st.markdown("### Connection Status")

    from expense_tracker.config import validate_all_settings

    status = validate_all_settings()

    services = [
        ("Tesseract (OCR)", "tesseract"),
        ("Google Sheets (Storage)", "google_sheets"),
        ("Application", "app"),
    ]

    for name, key in services:
        if status.get(key, False):
            st.success(f"✅ {name} - Configured")
        else:
            error = status.get(f"{key}_error", "Not configured")
            st.error(f"❌ {name} - {error}")

    if not status.get("google_sheets", False):
        st.info("Without Google Sheets, data is kept in memory until the app restarts.")

    st.markdown("---")
    st.markdown("### Configuration")
    st.markdown(
        "To configure the application, create a `.env` file. "
        "See `.env.example` for the required variables."
    )


if __name__ == "__main__":
    main()
