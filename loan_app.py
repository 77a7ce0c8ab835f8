# loan_app.py
import streamlit as st
st.set_page_config(page_title="Loan Dashboard", page_icon="💰", layout="centered")

from datetime import date
import logging

import loan_state as ls
from loan_ledger import (
    CATEGORIES, build_portfolio_pdf, category_color, category_label, format_compact,
    format_currency, is_active, loan_total_paid, loans_frame, portfolio_aggregate, progress, remaining,
    render_loan_table, render_summary_cards,
)
from loan_session import MIN_PASSWORD_LENGTH, SessionController
import loan_store

logger = logging.getLogger(__name__)

# ---------------- Supabase ----------------
try:
    from supabase import create_client
    _sb = st.secrets.get("supabase", {})
    SUPABASE_URL = _sb.get("url"); SUPABASE_ANON_KEY = _sb.get("anon_key")
    if not SUPABASE_URL or not SUPABASE_ANON_KEY:
        raise RuntimeError("Missing supabase.url or supabase.anon_key in Streamlit secrets.")
    SUPABASE_OK = True; SUPABASE_ERROR = ""
except Exception as e:
    SUPABASE_OK = False; SUPABASE_ERROR = str(e)
    logger.error("Supabase configuration failed: %s", e)

def get_controller() -> SessionController:
    # one client per browser session; the auth token lives inside it
    if "controller" not in st.session_state:
        controller = SessionController(create_client(SUPABASE_URL, SUPABASE_ANON_KEY))
        # may fire from the auth refresh timer thread, so it only queues the change
        inbox = st.session_state["session_inbox"] = []
        controller.subscribe(lambda event, user: inbox.append(user))
        st.session_state["controller"] = controller
    return st.session_state["controller"]

# ---------------- State ----------------
def get_state() -> ls.DashboardState:
    if "dash" not in st.session_state:
        st.session_state["dash"] = ls.DashboardState()
    return st.session_state["dash"]

def put_state(state: ls.DashboardState):
    st.session_state["dash"] = state

def apply_session_changes(controller: SessionController):
    inbox = st.session_state.get("session_inbox", [])
    while inbox:
        put_state(ls.session_changed(get_state(), inbox.pop(0)))
    user = controller.current_user()
    if get_state().user != user:
        put_state(ls.session_changed(get_state(), user))

def sync_loans(force: bool = False):
    """Fetch the signed-in user's loans unless they are already loaded."""
    state = get_state()
    ctx = get_controller().context()
    if ctx is None or not (force or ls.needs_fetch(state)):
        return
    result = loan_store.fetch_loans(ctx.client, ctx.user_id)
    put_state(ls.loans_loaded(get_state(), result, ctx.user_id))

def show_notice(state: ls.DashboardState):
    n = state.notice
    if n is None:
        return
    {"info": st.info, "success": st.success}.get(n.level, st.error)(n.text)

def _dot(category: str) -> str:
    color = category_color(category)
    return (f"<span style='display:inline-block;width:12px;height:12px;border-radius:50%;"
            f"background:{color};margin-right:6px;'></span>")

# ---------------- Views ----------------
def landing(controller: SessionController):
    st.title("Loan Dashboard")
    st.caption("Track your loan repayments")
    is_sign_up = st.session_state.get("is_sign_up", False)

    with st.form("auth_form"):
        email = st.text_input("Email", placeholder="you@example.com")
        pw = st.text_input("Password", type="password", placeholder="********",
                           help=f"At least {MIN_PASSWORD_LENGTH} characters.")
        submitted = st.form_submit_button("Create Account" if is_sign_up else "Sign In",
                                          use_container_width=True)
    if submitted:
        if is_sign_up:
            result = controller.sign_up(email, pw)
        else:
            result = controller.sign_in(email, pw)
            apply_session_changes(controller)
        put_state(ls.auth_feedback(get_state(), result))
        if result.ok and not is_sign_up:
            st.rerun()

    show_notice(get_state())

    prompt = "Already have an account?" if is_sign_up else "Don't have an account?"
    if st.button(f"{prompt} {'Sign In' if is_sign_up else 'Create Account'}"):
        st.session_state["is_sign_up"] = not is_sign_up
        put_state(ls.dismiss_notice(get_state())); st.rerun()

def header(controller: SessionController, state: ls.DashboardState):
    a, b = st.columns([2, 1.4])
    with a:
        st.title("Loan Dashboard")
        st.caption(state.user.email)
    with b:
        c1, c2, c3 = st.columns(3)
        if c1.button("➕ Add", help="Add Loan", use_container_width=True):
            put_state(ls.open_add_loan(state)); st.rerun()
        if c2.button("🔄", help="Refresh", use_container_width=True):
            put_state(ls.dismiss_notice(state)); sync_loans(force=True); st.rerun()
        if c3.button("🚪", help="Logout", use_container_width=True):
            result = controller.sign_out()
            apply_session_changes(controller)
            put_state(ls.auth_feedback(get_state(), result)); st.rerun()

def add_loan_modal(ctx):
    state = get_state()
    with st.container(border=True):
        st.subheader("Add New Loan")
        with st.form("add_loan_form"):
            f = state.loan_form
            name = st.text_input("Loan Name *", value=f.name, placeholder="e.g., Car Loan")
            values = [c["value"] for c in CATEGORIES]
            category = st.selectbox("Category", values, index=values.index(f.category),
                                    format_func=category_label)
            c1, c2 = st.columns(2)
            principal = c1.text_input("Principal (₦) *", value=f.principal, placeholder="500000")
            interest = c2.text_input("Interest Rate (%)", value=f.interest_rate, placeholder="12")
            c3, c4 = st.columns(2)
            monthly = c3.text_input("Monthly Payment (₦) *", value=f.monthly_payment, placeholder="50000")
            tenure = c4.text_input("Tenure (months)", value=f.tenure, placeholder="12")
            start = st.date_input("Start Date", value=f.start_date)
            s1, s2 = st.columns(2)
            cancel = s1.form_submit_button("Cancel", use_container_width=True)
            submit = s2.form_submit_button("Add Loan", type="primary", use_container_width=True)

    if cancel:
        put_state(ls.close_modal(state)); st.rerun()
    if submit:
        for k, v in (("name", name), ("category", category), ("principal", principal),
                     ("interest_rate", interest), ("monthly_payment", monthly),
                     ("tenure", tenure), ("start_date", start)):
            state = ls.edit_loan_field(state, k, v)
        state, fields = ls.submit_loan_form(state)
        if fields is not None:
            state = ls.loan_created(state, loan_store.create_loan(ctx.client, ctx.user_id, fields))
        put_state(state); st.rerun()

def payment_modal(ctx):
    state = get_state()
    loan = ls.payment_loan(state)
    if loan is None:
        put_state(ls.close_modal(state)); return
    with st.container(border=True):
        st.subheader("Record Payment")
        st.caption(loan.get("name") or "")
        with st.form("payment_form"):
            amount = st.text_input("Amount (₦)", value=state.payment_form.amount)
            note = st.text_input("Note (optional)", value=state.payment_form.note,
                                 placeholder="e.g., January payment")
            s1, s2 = st.columns(2)
            cancel = s1.form_submit_button("Cancel", use_container_width=True)
            submit = s2.form_submit_button("Confirm Payment", type="primary", use_container_width=True)

    if cancel:
        put_state(ls.close_modal(state)); st.rerun()
    if submit:
        state = ls.edit_payment_field(ls.edit_payment_field(state, "amount", amount), "note", note)
        state, args = ls.submit_payment_form(state)
        if args is not None:
            state = ls.payment_recorded(state, loan_store.record_payment(ctx.client, *args))
        put_state(state); st.rerun()

def _add_button(state, key: str, label: str):
    if st.button(label, key=key, disabled=state.modal != ls.MODAL_CLOSED):
        put_state(ls.open_add_loan(state)); st.rerun()

def _pay_button(state, loan, key_prefix: str, label: str):
    if st.button(label, key=f"{key_prefix}_{loan['id']}", disabled=state.modal != ls.MODAL_CLOSED):
        put_state(ls.open_payment(state, loan)); st.rerun()

def overview_tab(state: ls.DashboardState):
    render_summary_cards(portfolio_aggregate(state.loans))
    st.subheader("Active Loans")
    active = ls.active_loans(state)
    if not active:
        st.info("No active loans yet.")
        _add_button(state, "ov_add_first", "Add your first loan"); return
    for loan in active:
        pct = progress(loan)
        a, b, c = st.columns([3, 1.2, 0.8])
        with a:
            st.markdown(f"{_dot(loan.get('category'))}**{loan.get('name')}**", unsafe_allow_html=True)
            st.progress(float(pct) / 100, text=f"{pct:.0f}% paid")
        with b:
            st.metric("remaining", format_compact(remaining(loan)), label_visibility="collapsed")
            st.caption("remaining")
        with c:
            _pay_button(state, loan, "ov_pay", "Pay")

def loans_tab(ctx, state: ls.DashboardState):
    if not state.loans:
        st.info("No loans yet. Add your first loan to start tracking.")
        _add_button(state, "ln_add_first", "Add Loan"); return
    for loan in state.loans:
        with st.container(border=True):
            a, b = st.columns([3, 1.4])
            with a:
                st.markdown(f"{_dot(loan.get('category'))}**{loan.get('name')}**", unsafe_allow_html=True)
                st.caption(category_label(loan.get("category")))
            with b:
                if is_active(loan):
                    _pay_button(state, loan, "ln_pay", "Record Payment")
                if st.button("🗑️ Delete", key=f"del_{loan['id']}"):
                    put_state(ls.request_delete(state, loan["id"])); st.rerun()

            if state.pending_delete == loan["id"]:
                st.warning("Are you sure you want to delete this loan? This cannot be undone.")
                y, n = st.columns(2)
                if y.button("Yes, delete", key=f"del_yes_{loan['id']}", type="primary"):
                    result = loan_store.delete_loan(ctx.client, loan["id"], confirmed=True)
                    put_state(ls.loan_deleted(get_state(), result)); st.rerun()
                if n.button("Cancel", key=f"del_no_{loan['id']}"):
                    put_state(ls.cancel_delete(get_state())); st.rerun()

            pct = progress(loan)
            st.progress(float(pct) / 100, text=f"Progress {pct:.1f}%")
            c1, c2, c3, c4 = st.columns(4)
            c1.metric("Principal", format_currency(loan.get("principal")))
            c2.metric("Monthly", format_currency(loan.get("monthly_payment")))
            c3.metric("Paid", format_currency(loan_total_paid(loan)))
            c4.metric("Remaining", format_currency(remaining(loan)))

    st.divider()
    df = loans_frame(state.loans)
    with st.expander("Table view", expanded=False):
        render_loan_table(df)
    a, b = st.columns(2)
    with a:
        st.download_button("⬇️ Download Loans CSV", data=df.to_csv(index=False).encode("utf-8"),
                           file_name=f"loans_{date.today().isoformat()}.csv", mime="text/csv")
    with b:
        st.download_button("📄 Download PDF Statement",
                           data=build_portfolio_pdf(list(state.loans), state.user.email),
                           file_name=f"loan_statement_{date.today().isoformat()}.pdf",
                           mime="application/pdf")

def dashboard(controller: SessionController):
    ctx = controller.context()
    sync_loans()
    state = get_state()
    header(controller, state)
    show_notice(state)

    if state.modal == ls.MODAL_ADD_LOAN:
        add_loan_modal(ctx)
    elif state.modal == ls.MODAL_PAYMENT:
        payment_modal(ctx)

    state = get_state()
    tab = st.radio("View", ls.TABS, index=ls.TABS.index(state.tab), horizontal=True,
                   format_func=str.title, label_visibility="collapsed")
    if tab != state.tab:
        state = ls.set_tab(state, tab); put_state(state)

    if state.tab == "overview":
        overview_tab(state)
    else:
        loans_tab(ctx, state)

# ---------------- Entry ----------------
def main():
    if not SUPABASE_OK:
        st.error(f"⚠️ Supabase connection failed: {SUPABASE_ERROR}"); st.stop()

    controller = get_controller()
    if controller.loading:
        with st.spinner("Loading..."):
            result = controller.restore()
        if not result.ok:
            put_state(ls.auth_feedback(get_state(), result))

    apply_session_changes(controller)
    if controller.current_user() is None:
        landing(controller); return
    dashboard(controller)

if __name__ == "__main__":
    main()
