"""
Streamlit Frontend for Shop Ledger

The screen a shop owner uses every day: log in, pick a month, see
income / expense / profit and the daily trend, add or delete entries,
move the books to another device, and ask the AI for advice.

DESIGN PRINCIPLES:
1. Simple, clear interface
2. Explicit confirmation before anything is deleted or imported
3. Clear error messages in simple language
4. Nothing from a previous login stays on screen after logout
"""

import asyncio
from datetime import date
from uuid import uuid4

import pandas as pd
import streamlit as st

from shop_ledger.ledger import period_key_for
from shop_ledger.models.transaction import SUGGESTED_CATEGORIES, TransactionType
from shop_ledger.orchestrator import (
    AdvisoryFlow,
    AuthFlow,
    LedgerFlow,
    TransferFlow,
    create_auth_flow,
    create_ledger_components,
)
from shop_ledger.session import SessionContext


# Page configuration
st.set_page_config(
    page_title="Shop Ledger",
    page_icon="💰",
    layout="centered",
    initial_sidebar_state="collapsed",
)


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
    """Ledger, transfer and advisory flows (cached, shared by every browser)."""
    return create_ledger_components()


def get_auth_flow() -> AuthFlow:
    """
    One auth flow per browser session.

    Its remembered login is keyed to this browser session only, so
    another browser never resumes it.
    """
    if "auth_flow" not in st.session_state:
        st.session_state.auth_flow = create_auth_flow(device_id=uuid4().hex)
    return st.session_state.auth_flow


def get_session() -> SessionContext:
    """One SessionContext per browser session."""
    if "ledger_session" not in st.session_state:
        st.session_state.ledger_session = SessionContext()
    return st.session_state.ledger_session


def money(value) -> str:
    return f"{value:,.2f}"


def main():
    """Main application entry point."""
    ledger_flow, transfer_flow, advisory_flow = get_components()
    auth_flow = get_auth_flow()
    session = get_session()

    # Every run: picks up expiry and logouts since the last one
    run_async(auth_flow.resume(session))

    if not session.is_authenticated:
        render_auth_page(auth_flow, session)
        return

    ok, message = run_async(ledger_flow.ensure_loaded(session))
    if not ok:
        st.error(message)

    render_header(auth_flow, session)
    render_dashboard(ledger_flow, advisory_flow, session)
    render_add_form(ledger_flow, session)
    render_transactions(ledger_flow, session)
    render_sync_panel(transfer_flow, session)


def render_auth_page(auth_flow: AuthFlow, session: SessionContext):
    """Login / sign-up screen."""
    st.title("💰 Shop Ledger")
    st.markdown("Keep your shop's accounts on every device.")

    login_tab, signup_tab = st.tabs(["Log in", "New account"])

    with login_tab:
        with st.form("login"):
            email = st.text_input("Email address")
            password = st.text_input("Password", type="password")
            submitted = st.form_submit_button("Log in", type="primary")
        if submitted:
            ok, message = run_async(auth_flow.sign_in(session, email, password))
            if ok:
                st.rerun()
            st.error(message)

    with signup_tab:
        with st.form("signup"):
            name = st.text_input("Your name")
            email = st.text_input("Email address", key="signup_email")
            password = st.text_input("Password", type="password", key="signup_password")
            submitted = st.form_submit_button("Create account", type="primary")
        if submitted:
            ok, message = run_async(
                auth_flow.sign_up(session, email, password, name)
            )
            if ok:
                st.rerun()
            st.error(message)


def render_header(auth_flow: AuthFlow, session: SessionContext):
    identity = session.identity
    col1, col2 = st.columns([4, 1])
    with col1:
        st.title("💰 Shop Ledger")
        st.caption(f"{identity.name} · {identity.email}")
    with col2:
        if st.button("Log out"):
            run_async(auth_flow.sign_out(session))
            st.rerun()


def render_dashboard(
    ledger_flow: LedgerFlow,
    advisory_flow: AdvisoryFlow,
    session: SessionContext,
):
    """Month selector, totals, AI insight and trend chart."""
    current = date.fromisoformat(f"{session.view_period}-01")
    picked = st.date_input("Month", value=current, format="YYYY-MM-DD")
    period = period_key_for(picked)
    if period != session.view_period:
        ledger_flow.set_period(session, period)
        session.advisory_text = None

    view = ledger_flow.month_view(session)

    col1, col2, col3 = st.columns(3)
    col1.metric("Income", money(view.summary.income))
    col2.metric("Expense", money(view.summary.expense))
    col3.metric("Profit", money(view.summary.profit))
    st.caption(
        f"Today: income {money(view.today.income)}, "
        f"expense {money(view.today.expense)}"
    )

    with st.container(border=True):
        st.subheader("✨ AI business insight")
        if session.advisory_text:
            st.write(session.advisory_text)
        else:
            st.caption("Press the button to analyse this month's accounts.")
        if st.button("Analyse"):
            with st.spinner("Please wait..."):
                run_async(advisory_flow.insight_for_month(session))
            st.rerun()

    st.subheader("📈 Growth chart")
    if not view.daily_series:
        st.info("No data for this month.")
    else:
        chart = pd.DataFrame(
            {
                "Income": [float(p.income) for p in view.daily_series],
                "Expense": [float(p.expense) for p in view.daily_series],
            },
            index=[p.date for p in view.daily_series],
        )
        st.line_chart(chart)


def render_add_form(ledger_flow: LedgerFlow, session: SessionContext):
    with st.expander("➕ Add a transaction"):
        with st.form("add_transaction", clear_on_submit=True):
            description = st.text_input("Description")
            amount = st.number_input("Amount", min_value=0.0, step=1.0, format="%.2f")
            tx_type = st.selectbox(
                "Type",
                options=list(TransactionType),
                format_func=lambda t: t.value,
            )
            category = st.selectbox("Category", options=list(SUGGESTED_CATEGORIES))
            day = st.date_input("Date", value=date.today())
            submitted = st.form_submit_button("Save", type="primary")

        if submitted:
            ok, message = run_async(
                ledger_flow.add_transaction(
                    session, description, amount, tx_type, category, day
                )
            )
            if ok:
                st.success(message)
                st.rerun()
            else:
                st.error(message)


def render_transactions(ledger_flow: LedgerFlow, session: SessionContext):
    st.subheader("🧾 Transactions")
    view = ledger_flow.month_view(session)
    if view.is_empty:
        st.info("No transactions this month yet.")
        return

    confirm_id = session.ui_state.get("confirm_delete")
    for tx in view.transactions:
        col1, col2, col3 = st.columns([4, 2, 1])
        sign = "+" if tx.is_income else "-"
        col1.markdown(f"**{tx.description}**  \n{tx.date} · {tx.category}")
        col2.markdown(f"{sign}{money(tx.amount)}")
        if confirm_id == tx.id:
            if col3.button("Sure?", key=f"confirm_{tx.id}", type="primary"):
                ok, message = run_async(ledger_flow.delete_transaction(session, tx.id))
                session.ui_state.pop("confirm_delete", None)
                if not ok:
                    st.error(message)
                st.rerun()
        elif col3.button("🗑️", key=f"delete_{tx.id}"):
            session.ui_state["confirm_delete"] = tx.id
            st.rerun()


def render_sync_panel(transfer_flow: TransferFlow, session: SessionContext):
    """Export / import between devices."""
    with st.expander("🔄 Data sync"):
        st.markdown("**Option 1: use a code**")
        if st.button("Create code (Export)"):
            ok, result = transfer_flow.export_code(session)
            if ok:
                st.code(result, language=None)
                st.caption("Copy this code and paste it on the other device.")
            else:
                st.warning(result)

        code = st.text_area("Paste a sync code (Import)")
        if st.button("Read code") and code.strip():
            _, message = transfer_flow.stage_code(session, code)
            st.info(message)

        st.markdown("---")
        st.markdown("**Option 2: file backup (safer)**")
        export, message = transfer_flow.export_file(session)
        if export:
            st.download_button(
                "Download file",
                data=export.content.encode("utf-8"),
                file_name=export.filename,
                mime=export.mime_type,
            )
        else:
            st.caption(message)

        uploaded = st.file_uploader("Upload file", type=["json"])
        if uploaded is not None and st.button("Read file"):
            _, message = transfer_flow.stage_file(session, uploaded.getvalue())
            st.info(message)

        pending = transfer_flow.pending(session)
        if pending is not None:
            st.warning(pending.confirmation_prompt)
            col1, col2 = st.columns(2)
            if col1.button("Yes, import", type="primary"):
                ok, message = run_async(transfer_flow.confirm_import(session))
                (st.success if ok else st.error)(message)
                if ok:
                    st.rerun()
            if col2.button("Cancel"):
                transfer_flow.cancel(session)
                st.rerun()


if __name__ == "__main__":
    main()
