# loan_state.py
"""Dashboard state as an immutable value plus one pure function per action.

Nothing in here talks to Supabase or Streamlit. Gateway calls happen in the
page; their :class:`~loan_errors.Result` is handed to the matching ``*_ed``
reducer, which merges the returned rows or records the failure.
"""
from __future__ import annotations
from dataclasses import dataclass, field, fields, replace
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Optional

from loan_errors import Result, ValidationError
from loan_ledger import attach_totals, is_active
from loan_session import User
from loan_store import build_loan_row, build_payment_row

TABS = ("overview", "loans")

MODAL_CLOSED = "closed"
MODAL_ADD_LOAN = "add_loan"
MODAL_PAYMENT = "payment"


@dataclass(frozen=True)
class LoanForm:
    name: str = ""
    principal: str = ""
    interest_rate: str = ""
    monthly_payment: str = ""
    tenure: str = "12"
    start_date: date = field(default_factory=date.today)
    category: str = "personal"

    def as_fields(self) -> dict:
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class PaymentForm:
    amount: str = ""
    note: str = ""


@dataclass(frozen=True)
class Notice:
    level: str  # "info", "success" or "error"
    text: str


@dataclass(frozen=True)
class DashboardState:
    user: Optional[User] = None
    loans: tuple = ()
    loaded_for: Optional[str] = None
    fetch_failed: bool = False
    tab: str = "overview"
    modal: str = MODAL_CLOSED
    payment_loan_id: Optional[str] = None
    loan_form: LoanForm = field(default_factory=LoanForm)
    payment_form: PaymentForm = field(default_factory=PaymentForm)
    pending_delete: Optional[str] = None
    notice: Optional[Notice] = None


def _plain_amount(value) -> str:
    try:
        return f"{Decimal(str(value)).normalize():f}"
    except InvalidOperation:
        return ""


def _error(state: DashboardState, result: Result) -> DashboardState:
    return replace(state, notice=Notice("error", result.message))

# ---------------- lookups ----------------
def find_loan(state: DashboardState, loan_id) -> Optional[dict]:
    return next((l for l in state.loans if l.get("id") == loan_id), None)

def payment_loan(state: DashboardState) -> Optional[dict]:
    if state.modal != MODAL_PAYMENT:
        return None
    return find_loan(state, state.payment_loan_id)

def active_loans(state: DashboardState) -> list[dict]:
    return [l for l in state.loans if is_active(l)]

def needs_fetch(state: DashboardState) -> bool:
    # a failed load is not retried until the user asks for it
    return state.user is not None and state.loaded_for != state.user.id

# ---------------- session ----------------
def session_changed(state: DashboardState, user: Optional[User]) -> DashboardState:
    if user is None:
        # signing out forgets every loan and banner we were holding
        return DashboardState()
    if state.user is not None and state.user.id == user.id:
        return replace(state, user=user)
    return DashboardState(user=user)

def auth_feedback(state: DashboardState, result: Result) -> DashboardState:
    if not result.ok:
        return _error(state, result)
    if result.info:
        return replace(state, notice=Notice("info", result.info))
    # a failed first load outranks the plain sign-in success
    return state if state.fetch_failed else replace(state, notice=None)

def dismiss_notice(state: DashboardState) -> DashboardState:
    return replace(state, notice=None)

def set_tab(state: DashboardState, tab: str) -> DashboardState:
    if tab not in TABS:
        raise ValueError(f"Unknown tab: {tab}")
    return replace(state, tab=tab)

# ---------------- loading ----------------
def loans_loaded(state: DashboardState, result: Result, user_id: str) -> DashboardState:
    if state.user is None or state.user.id != user_id:
        # answer for a session that has since gone away
        return state
    if not result.ok:
        text = f"{result.message.rstrip('.')}. Use Refresh to try again."
        return replace(state, loaded_for=user_id, fetch_failed=True, notice=Notice("error", text))
    return replace(state, loans=tuple(result.value), loaded_for=user_id, fetch_failed=False)

# ---------------- modals ----------------
def open_add_loan(state: DashboardState) -> DashboardState:
    if state.modal != MODAL_CLOSED:
        return state
    return replace(state, modal=MODAL_ADD_LOAN, loan_form=LoanForm(), pending_delete=None)

def open_payment(state: DashboardState, loan: dict) -> DashboardState:
    if state.modal != MODAL_CLOSED:
        return state
    form = PaymentForm(amount=_plain_amount(loan.get("monthly_payment")))
    return replace(state, modal=MODAL_PAYMENT, payment_loan_id=loan.get("id"),
                   payment_form=form, pending_delete=None)

def close_modal(state: DashboardState) -> DashboardState:
    return replace(state, modal=MODAL_CLOSED, payment_loan_id=None,
                   loan_form=LoanForm(), payment_form=PaymentForm())

def edit_loan_field(state: DashboardState, name: str, value) -> DashboardState:
    if name not in LoanForm.__dataclass_fields__:
        raise ValueError(f"Unknown loan field: {name}")
    return replace(state, loan_form=replace(state.loan_form, **{name: value}))

def edit_payment_field(state: DashboardState, name: str, value) -> DashboardState:
    if name not in PaymentForm.__dataclass_fields__:
        raise ValueError(f"Unknown payment field: {name}")
    return replace(state, payment_form=replace(state.payment_form, **{name: value}))

# ---------------- submits ----------------
def submit_loan_form(state: DashboardState):
    """Validate the add-loan form.

    Returns ``(state, fields)``; ``fields`` is None when the form was rejected,
    in which case the returned state carries the validation notice.
    """
    if state.modal != MODAL_ADD_LOAN or state.user is None:
        return state, None
    form_fields = state.loan_form.as_fields()
    try:
        build_loan_row(state.user.id, form_fields)
    except ValidationError as e:
        return replace(state, notice=Notice("error", e.message)), None
    return replace(state, notice=None), form_fields

def submit_payment_form(state: DashboardState):
    """Validate the payment form; returns ``(state, (loan_id, amount, note))`` or ``(state, None)``."""
    loan = payment_loan(state)
    if loan is None:
        return state, None
    form = state.payment_form
    try:
        build_payment_row(loan["id"], form.amount, form.note)
    except ValidationError as e:
        return replace(state, notice=Notice("error", e.message)), None
    return replace(state, notice=None), (loan["id"], form.amount, form.note)

def loan_created(state: DashboardState, result: Result) -> DashboardState:
    if not result.ok:
        return _error(state, result)
    state = close_modal(state)
    return replace(state, loans=(result.value,) + state.loans,
                   notice=Notice("success", f"Added {result.value.get('name') or 'loan'}."))

def payment_recorded(state: DashboardState, result: Result) -> DashboardState:
    if not result.ok:
        return _error(state, result)
    payment = result.value
    loan_id = payment.get("loan_id") or state.payment_loan_id
    loans = tuple(
        attach_totals({**l, "payments": list(l.get("payments") or []) + [payment]})
        if l.get("id") == loan_id else l
        for l in state.loans
    )
    state = close_modal(state)
    return replace(state, loans=loans, notice=Notice("success", "Payment recorded."))

# ---------------- delete ----------------
def request_delete(state: DashboardState, loan_id) -> DashboardState:
    if find_loan(state, loan_id) is None:
        return state
    return replace(state, pending_delete=loan_id)

def cancel_delete(state: DashboardState) -> DashboardState:
    return replace(state, pending_delete=None)

def loan_deleted(state: DashboardState, result: Result) -> DashboardState:
    if not result.ok:
        return replace(_error(state, result), pending_delete=None)
    loans = tuple(l for l in state.loans if l.get("id") != result.value)
    return replace(state, loans=loans, pending_delete=None,
                   notice=Notice("success", "Loan deleted."))
