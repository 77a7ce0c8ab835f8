# loan_store.py
"""Reads and writes against the Supabase ``loans`` and ``payments`` tables.

Every call returns a :class:`Result`; nothing here raises into the page.
Rows are plain dicts exactly as PostgREST returns them, with ``total_paid``
attached on read.
"""
from __future__ import annotations
from datetime import date
from decimal import Decimal, InvalidOperation
import logging
from typing import Mapping

from loan_errors import DataFetchError, Result, ValidationError, WriteError, provider_message
from loan_ledger import CATEGORY_VALUES, attach_totals

logger = logging.getLogger(__name__)

DEFAULT_TENURE = 12
DEFAULT_CATEGORY = "personal"

# ---------------- parsing ----------------
def parse_decimal(text) -> Decimal | None:
    if text is None:
        return None
    s = str(text).strip().replace(",", "")
    if not s:
        return None
    try:
        value = Decimal(s)
    except InvalidOperation:
        return None
    return value if value.is_finite() else None

def parse_positive(text, field: str, label: str) -> Decimal:
    value = parse_decimal(text)
    if value is None:
        raise ValidationError(f"{label} must be a number.", field)
    if value <= 0:
        raise ValidationError(f"{label} must be greater than zero.", field)
    return value

def parse_tenure(text) -> int:
    value = parse_decimal(text)
    if value is None or value < 1:
        return DEFAULT_TENURE
    return int(value)

def parse_interest_rate(text) -> Decimal:
    value = parse_decimal(text)
    if value is None:
        return Decimal("0")
    if value < 0:
        raise ValidationError("Interest rate cannot be negative.", "interest_rate")
    return value

def _start_date(value) -> str:
    if isinstance(value, date):
        return value.isoformat()
    if value:
        try:
            return date.fromisoformat(str(value).strip()).isoformat()
        except ValueError:
            raise ValidationError("Start date must be a valid date.", "start_date")
    return date.today().isoformat()

def build_loan_row(user_id: str, fields: Mapping) -> dict:
    """Turn raw form fields into an insertable ``loans`` row.

    Name, principal and monthly payment are required. Interest rate falls
    back to 0 and tenure to 12 months when left blank or unparseable. New
    loans always start out ``active``.
    """
    name = str(fields.get("name") or "").strip()
    if not name:
        raise ValidationError("Loan name is required.", "name")
    principal = parse_positive(fields.get("principal"), "principal", "Principal")
    monthly = parse_positive(fields.get("monthly_payment"), "monthly_payment", "Monthly payment")
    category = fields.get("category") or DEFAULT_CATEGORY
    if category not in CATEGORY_VALUES:
        raise ValidationError(f"Unknown category: {category}", "category")
    return {
        "user_id": user_id,
        "name": name,
        "principal": float(principal),
        "interest_rate": float(parse_interest_rate(fields.get("interest_rate"))),
        "monthly_payment": float(monthly),
        "tenure": parse_tenure(fields.get("tenure")),
        "start_date": _start_date(fields.get("start_date")),
        "category": category,
        "status": "active",
    }

def build_payment_row(loan_id: str, amount, note: str | None = None) -> dict:
    value = parse_positive(amount, "amount", "Payment amount")
    note = (note or "").strip()
    return {"loan_id": loan_id, "amount": float(value), "note": note or None}

# ---------------- DB access ----------------
def fetch_loans(client, user_id: str) -> Result:
    try:
        rows = (client.table("loans").select("*, payments(*)")
                .eq("user_id", user_id).order("created_at", desc=True)
                .execute().data) or []
    except Exception as e:
        logger.warning("Loan fetch failed for user %s: %s", user_id, e)
        return Result.failure(DataFetchError(f"Could not load loans: {provider_message(e)}"))
    return Result.success([attach_totals(r) for r in rows])

def create_loan(client, user_id: str, fields: Mapping) -> Result:
    try:
        row = build_loan_row(user_id, fields)
    except ValidationError as e:
        return Result.failure(e)
    try:
        data = client.table("loans").insert(row).execute().data or []
    except Exception as e:
        logger.error("Create loan failed: %s", e)
        return Result.failure(WriteError(f"Create loan failed: {provider_message(e)}"))
    if not data:
        return Result.failure(WriteError("Create loan failed: no row returned."))
    return Result.success(attach_totals({**data[0], "payments": []}))

def record_payment(client, loan_id: str, amount, note: str | None = None) -> Result:
    try:
        row = build_payment_row(loan_id, amount, note)
    except ValidationError as e:
        return Result.failure(e)
    try:
        data = client.table("payments").insert(row).execute().data or []
    except Exception as e:
        logger.error("Record payment failed for loan %s: %s", loan_id, e)
        return Result.failure(WriteError(f"Record payment failed: {provider_message(e)}"))
    if not data:
        return Result.failure(WriteError("Record payment failed: no row returned."))
    return Result.success(data[0])

def delete_loan(client, loan_id: str, confirmed: bool = False) -> Result:
    if not confirmed:
        return Result.failure(WriteError("Deleting a loan needs explicit confirmation."))
    try:
        data = client.table("loans").delete().eq("id", loan_id).execute().data or []
    except Exception as e:
        logger.error("Delete loan %s failed: %s", loan_id, e)
        return Result.failure(WriteError(f"Delete failed: {provider_message(e)}"))
    if not data:
        # nothing matched: already gone or hidden by row-level security
        return Result.failure(WriteError("Delete failed: loan not found."))
    return Result.success(loan_id)
