import sys
import os
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import atexit
import threading

import streamlit as st
import pandas as pd
import plotly.express as px

from parish.config import load_settings, setup_logging
from parish.domain import PURPOSES, INTENTION_TYPES
from parish.events import EventBus, DONATION_RECORDED, REMINDER_FIRED, PAYMENT_SAVED, payment_saved_handler
from parish.forms import FormState, FIELD_NAMES, edit_field
from parish.ledger import TransactionStore
from parish.reminders import ReminderScheduler, GRANTED, DENIED
from parish.reports import (
    total_all,
    summary_by_purpose,
    count_by_intention_type,
    format_php,
    donations_frame,
    purpose_frame,
)
from parish.services import DonationService
from parish.storage import JsonFileStorage
from parish.payments import (
    SACRAMENT_TYPES,
    PAYMENT_STATUSES,
    PAYMENT_CATEGORIES,
    load_seed,
    save_payment,
    filter_payments,
    total_income,
    compute_change,
)
from parish.expenses import (
    MONTH_NAMES,
    EXPENSE_CATEGORY_GROUPS,
    ExpenseReportClient,
    ExpenseReportError,
    search_expenses,
    format_expense_date,
    expense_categories,
)

settings = load_settings()
setup_logging(settings)

st.set_page_config(page_title="Parish Office", layout="wide")


def build_session():
    """Storage, ledger, scheduler and service for this browser session."""
    storage = JsonFileStorage(settings.storage_path)
    store = TransactionStore(storage)
    store.load()
    bus = EventBus()
    inbox = []
    inbox_lock = threading.Lock()

    def queue_notification(event, payload: dict) -> dict:
        # timer threads cannot draw; the next rerun shows the toast
        with inbox_lock:
            inbox.append(payload)
        return {"queued": True}

    scheduler = ReminderScheduler(
        storage,
        store,
        permission=lambda: GRANTED if st.session_state.get("notifications_enabled") else DENIED,
        bus=bus,
    )
    scheduler.load()
    atexit.register(scheduler.shutdown)
    bus.subscribe(DONATION_RECORDED, scheduler.on_donation_recorded)
    bus.subscribe(REMINDER_FIRED, queue_notification)
    bus.subscribe(PAYMENT_SAVED, payment_saved_handler)
    service = DonationService(store, bus=bus, processing_delay=settings.processing_delay)
    return {
        "store": store,
        "scheduler": scheduler,
        "service": service,
        "bus": bus,
        "inbox": inbox,
        "inbox_lock": inbox_lock,
    }


if "parish" not in st.session_state:
    st.session_state.parish = build_session()
parish = st.session_state.parish

if "donation_state" not in st.session_state:
    st.session_state.donation_state = FormState()
if "donation_flash" not in st.session_state:
    st.session_state.donation_flash = ""

with parish["inbox_lock"]:
    pending = list(parish["inbox"])
    parish["inbox"].clear()
for n in pending:
    st.toast(f"🔔 {n['title']}: {n['body']}")

st.sidebar.markdown("### 🔔 Reminders")
st.sidebar.checkbox(
    "Enable reminder notifications",
    key="notifications_enabled",
    help="Without this, reminders are only listed as upcoming",
)

menu = st.sidebar.radio(
    "Menu",
    ["🙏 Donations", "💳 Payments", "📑 Expense Reports"]
)


def _sync_widgets_from_state(state: FormState) -> None:
    for name in FIELD_NAMES:
        st.session_state[f"don_{name}"] = getattr(state.form, name)


def _submit_donation() -> None:
    result = parish["service"].submit(st.session_state.donation_state)
    st.session_state.donation_state = result.state
    if result.ok:
        st.session_state.donation_flash = result.message
    _sync_widgets_from_state(result.state)


def _cancel_donation() -> None:
    st.session_state.donation_state = parish["service"].cancel()
    _sync_widgets_from_state(st.session_state.donation_state)


def _reset_range() -> None:
    st.session_state.don_from = None
    st.session_state.don_to = None


def _on_field_change(name: str) -> None:
    key = f"don_{name}"
    current = st.session_state.donation_state
    updated = edit_field(current, name, st.session_state[key])
    st.session_state.donation_state = updated
    # rejected keystrokes snap the widget back to the stored value
    st.session_state[key] = getattr(updated.form, name)


def _text_field(label: str, name: str, **kwargs):
    key = f"don_{name}"
    if key not in st.session_state:
        st.session_state[key] = getattr(st.session_state.donation_state.form, name)
    st.text_input(label, key=key, on_change=_on_field_change, args=(name,), **kwargs)
    err = st.session_state.donation_state.errors.get(name)
    if err:
        st.caption(f":red[{err}]")


def _select_field(label: str, name: str, options, **kwargs):
    key = f"don_{name}"
    if key not in st.session_state:
        st.session_state[key] = getattr(st.session_state.donation_state.form, name)
    st.selectbox(label, options, key=key, on_change=_on_field_change, args=(name,), **kwargs)
    err = st.session_state.donation_state.errors.get(name)
    if err:
        st.caption(f":red[{err}]")


if menu == "🙏 Donations":
    st.title("🙏 Donations Form")

    if st.session_state.donation_flash:
        st.success(st.session_state.donation_flash)
        st.session_state.donation_flash = ""
    general = st.session_state.donation_state.errors.get("general")
    if general:
        st.error(general)

    col1, col2 = st.columns(2)
    with col1:
        _text_field("Date of Donation * (YYYY-MM-DD)", "date_of_donation", placeholder="2025-01-01")
        _text_field("Full Name *", "full_name", placeholder="Enter your full name")
        _text_field("Email Address", "email_address", placeholder="Enter email")
        _text_field("Donation Amount *", "donation_amount", placeholder="Enter amount (e.g. 500.00)")
        _text_field("GCash Number *", "gcash_number", placeholder="11-digit GCash number", max_chars=11)
        _select_field("Purpose of Donation *", "purpose_of_donation", list(PURPOSES))
    with col2:
        _text_field("Time of Donation * (HH:MM)", "time_of_donation", placeholder="10:00")
        _text_field("Contact Number *", "contact_number", placeholder="Enter your contact number")
        _text_field("Home Address", "home_address", placeholder="Enter home address")
        _text_field("Reference Number *", "reference_number", placeholder="Enter reference number")
        _text_field("Optional Mass Intention (Name)", "name_of_persons",
                    placeholder="Name for mass intention (optional)")
        _select_field("Intention Type *", "intention_type", [""] + list(INTENTION_TYPES),
                      format_func=lambda v: v or "-- Select --")

    b1, b2, _ = st.columns([1, 1, 6])
    with b1:
        st.button("Submit", type="primary", key="btn_donation_submit",
                  on_click=_submit_donation, disabled=parish["service"].busy)
    with b2:
        st.button("Cancel", key="btn_donation_cancel", on_click=_cancel_donation)

    st.divider()
    st.header("💸 Transactions")

    f1, f2, f3 = st.columns([2, 2, 1])
    with f1:
        date_from = st.date_input("From", value=None, key="don_from")
    with f2:
        date_to = st.date_input("To", value=None, key="don_to")
    with f3:
        st.write("")
        st.button("Reset", key="btn_don_reset", on_click=_reset_range)

    filtered = parish["store"].filter_by_date_range(date_from, date_to)
    if filtered:
        table = donations_frame(filtered)
        st.dataframe(table, use_container_width=True, hide_index=True)
        st.download_button("⬇ Download CSV", table.to_csv(index=False), file_name="donations.csv")
    else:
        st.info("No transactions")

    st.subheader("📊 Report Summary")
    summary = summary_by_purpose(filtered)
    k1, k2 = st.columns([1, 2])
    with k1:
        st.metric("Total (filtered)", format_php(total_all(filtered)))
        if summary:
            for purpose, amount in summary.items():
                st.write(f"- {purpose}: {format_php(amount)}")
        else:
            st.write("No data")
    with k2:
        if summary:
            fig = px.pie(purpose_frame(summary), values="Total", names="Purpose", title="Donations by Purpose")
            fig.update_layout(height=300)
            st.plotly_chart(fig, use_container_width=True)
            counts = count_by_intention_type(filtered)
            st.caption(" · ".join(f"{k or 'None'}: {v}" for k, v in counts.items()))

    st.subheader("⏰ Upcoming Reminders")
    upcoming = parish["scheduler"].upcoming()
    if upcoming:
        for r in upcoming:
            c_text, c_btn = st.columns([6, 1])
            with c_text:
                armed = " (notification armed)" if parish["scheduler"].is_armed(r.id) else ""
                st.markdown(
                    f"{r.date_of_donation} {r.time_of_donation}: Mass for **{r.name_of_persons}** "
                    f"(Donor: {r.full_name}){armed}"
                )
            with c_btn:
                if st.button("Clear", key=f"btn_clear_rem_{r.id}"):
                    parish["scheduler"].clear(r.id)
                    st.rerun()
    else:
        st.info("No upcoming reminders.")

elif menu == "💳 Payments":
    if "payments" not in st.session_state:
        st.session_state.payments = load_seed(str(settings.seed_path)) if settings.seed_path.exists() else ()
    if "editing_payment" not in st.session_state:
        st.session_state.editing_payment = None

    payments = st.session_state.payments
    if st.session_state.get("pay_flash"):
        st.success(st.session_state.pay_flash)
        st.session_state.pay_flash = ""
    t1, t2 = st.columns([3, 1])
    with t1:
        st.title("💳 Payment Management")
    with t2:
        st.metric("Total Income", format_php(total_income(payments)))

    s1, s2, s3, s4 = st.columns([3, 2, 2, 3])
    with s1:
        search = st.text_input("Search", placeholder="Search by name or receipt number", key="pay_search")
    with s2:
        sacrament = st.selectbox("Sacrament", [""] + list(SACRAMENT_TYPES),
                                 format_func=lambda v: v or "All Sacraments", key="pay_sacrament")
    with s3:
        status = st.selectbox("Status", [""] + list(PAYMENT_STATUSES),
                              format_func=lambda v: v.capitalize() if v else "All Status", key="pay_status")
    with s4:
        category = st.selectbox("Category", [""] + list(PAYMENT_CATEGORIES),
                                format_func=lambda v: v or "All Categories", key="pay_category")

    shown = filter_payments(payments, search, sacrament, status, category)
    if shown:
        df = pd.DataFrame([{
            "Receipt #": p.receipt_number,
            "Name": p.full_name,
            "Sacrament": p.sacrament_type,
            "Category": p.category,
            "Total": format_php(p.total_amount),
            "Paid": format_php(p.amount_paid),
            "Balance": format_php(p.balance),
            "Status": p.status,
            "Date": pd.to_datetime(p.created_at, errors="coerce").strftime("%m/%d/%Y, %I:%M %p"),
        } for p in shown])
        st.dataframe(df, use_container_width=True, hide_index=True)
    else:
        st.info("No payment records found")

    edit_options = {f"{p.receipt_number} · {p.full_name}": p.id for p in payments}
    pick = st.selectbox("Edit payment", [""] + list(edit_options), key="pay_edit_pick",
                        format_func=lambda v: v or "➕ New payment")
    editing_id = edit_options.get(pick)
    current = next((p for p in payments if p.id == editing_id), None)

    st.subheader("✏️ Edit Payment" if current else "➕ Add Payment")
    with st.form("payment_form", clear_on_submit=current is None):
        c1, c2 = st.columns(2)
        with c1:
            first_name = st.text_input("First Name", value=current.first_name if current else "")
            sac = st.selectbox("Sacrament", list(SACRAMENT_TYPES),
                               index=SACRAMENT_TYPES.index(current.sacrament_type) if current else 0)
            total_amount = st.number_input("Total Amount (₱)", min_value=0.0, step=100.0, format="%.2f",
                                           value=float(current.total_amount) if current else 0.0)
        with c2:
            last_name = st.text_input("Last Name", value=current.last_name if current else "")
            cat = st.selectbox("Category", list(PAYMENT_CATEGORIES),
                               index=PAYMENT_CATEGORIES.index(current.category)
                               if current and current.category in PAYMENT_CATEGORIES else 0)
            amount_paid = st.number_input("Amount Paid (₱)", min_value=0.0, step=100.0, format="%.2f",
                                          value=float(current.amount_paid) if current else 0.0)
        st.caption(f"Change: ₱{compute_change(total_amount, amount_paid)}")
        saved = st.form_submit_button("Update Payment" if current else "Save Payment")

    if saved:
        if not first_name.strip() or not last_name.strip():
            st.error("First and last name are required")
        else:
            st.session_state.payments, payment = save_payment(
                payments, first_name.strip(), last_name.strip(), sac, cat,
                total_amount, amount_paid, editing_id=editing_id,
            )
            results = parish["bus"].publish(
                PAYMENT_SAVED, {"receipt_number": payment.receipt_number, "edited": current is not None}
            )
            st.session_state.pay_flash = next((r["message"] for r in results if "message" in r), "")
            st.rerun()

elif menu == "📑 Expense Reports":
    st.title("📑 Expense Reports")

    if "expense_client" not in st.session_state:
        st.session_state.expense_client = ExpenseReportClient(settings.report_url, timeout=settings.http_timeout)
    if "expense_years" not in st.session_state:
        st.session_state.expense_years = []

    e1, e2, e3, e4 = st.columns([3, 3, 2, 2])
    with e1:
        term = st.text_input("Search", placeholder="Search expenses by name or description", key="exp_search")
    with e2:
        labels = {c: next(g for g, cats in EXPENSE_CATEGORY_GROUPS if c in cats) for c in expense_categories()}
        exp_category = st.selectbox("Category", [""] + list(labels), key="exp_category",
                                    format_func=lambda v: f"{v} ({labels[v]})" if v else "All Categories")
    with e3:
        exp_month = st.selectbox("Month", [""] + list(MONTH_NAMES), key="exp_month",
                                 format_func=lambda v: v or "All Months")
    with e4:
        exp_year = st.selectbox("Year", [""] + list(st.session_state.expense_years), key="exp_year",
                                format_func=lambda v: str(v) if v else "All Years")

    try:
        with st.spinner("Loading expense data..."):
            page = st.session_state.expense_client.fetch(
                category=exp_category or None, month=exp_month or None, year=exp_year or None
            )
    except ExpenseReportError as e:
        st.error(str(e))
        page = None

    if page is not None:
        if page.available_years:
            st.session_state.expense_years = list(page.available_years)
        rows = search_expenses(page.reports, term)
        if rows:
            df = pd.DataFrame([{
                "Expense": r.expense_name,
                "Category": r.category,
                "Amount": format_php(r.amount),
                "Qty": r.quantity,
                "Total Cost": format_php(r.total_cost),
                "Date": format_expense_date(r.date_of_expense),
            } for r in rows])
            st.dataframe(df, use_container_width=True, hide_index=True)
            by_cat = pd.DataFrame([{"Category": r.category, "Total": r.total_cost} for r in rows])
            by_cat = by_cat.groupby("Category", as_index=False)["Total"].sum()
            fig = px.bar(by_cat, x="Category", y="Total", title="Expenses by Category", template="plotly_dark")
            st.plotly_chart(fig, use_container_width=True)
        else:
            st.info("No expense records found")
        st.metric("Total Expenses", format_php(page.total_expenses))
