# loan_ledger.py
from __future__ import annotations
from dataclasses import dataclass
from datetime import date as _date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from io import BytesIO
import pandas as pd
import streamlit as st
import matplotlib.pyplot as plt
from matplotlib.backends.backend_pdf import PdfPages

CURRENCY_SYMBOL = "₦"

CATEGORIES = [
    {"value": "personal", "label": "Personal Loan", "color": "#3B82F6"},
    {"value": "business", "label": "Business Loan", "color": "#10B981"},
    {"value": "mortgage", "label": "Mortgage", "color": "#8B5CF6"},
    {"value": "auto", "label": "Auto Loan", "color": "#F59E0B"},
    {"value": "education", "label": "Education", "color": "#EC4899"},
    {"value": "other", "label": "Other", "color": "#6B7280"},
]
CATEGORY_VALUES = [c["value"] for c in CATEGORIES]
_FALLBACK_CATEGORY = CATEGORIES[-1]

# ---------------- small helpers ----------------
def _dec(x) -> Decimal:
    if x is None or x == "":
        return Decimal("0.00")
    try:
        return Decimal(str(x)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    except InvalidOperation:
        return Decimal("0.00")

def _category(value: str | None) -> dict:
    return next((c for c in CATEGORIES if c["value"] == value), _FALLBACK_CATEGORY)

def category_label(value: str | None) -> str:
    return _category(value)["label"]

def category_color(value: str | None) -> str:
    return _category(value)["color"]

def is_active(loan: dict) -> bool:
    return loan.get("status") == "active"

# ---------------- formatting ----------------
def format_currency(amount) -> str:
    """Whole-naira amount with thousands separators, e.g. ``₦1,500,000``."""
    whole = _dec(amount).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    sign = "-" if whole < 0 else ""
    return f"{sign}{CURRENCY_SYMBOL}{abs(whole):,}"

def format_compact(amount) -> str:
    value = _dec(amount)
    if value >= 1_000_000:
        short = (value / Decimal(1_000_000)).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
        return f"{CURRENCY_SYMBOL}{short}M"
    if value >= 1_000:
        short = (value / Decimal(1_000)).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
        return f"{CURRENCY_SYMBOL}{short}K"
    return format_currency(value)

# ---------------- derived metrics ----------------
def compute_total_paid(payments) -> Decimal:
    total = Decimal("0.00")
    for p in payments or []:
        total += _dec(p.get("amount"))
    return total

def loan_total_paid(loan: dict) -> Decimal:
    # always recomputed from the payments relation, never read back from a stored field
    return compute_total_paid(loan.get("payments"))

def attach_totals(loan: dict) -> dict:
    out = dict(loan)
    out["payments"] = list(loan.get("payments") or [])
    out["total_paid"] = compute_total_paid(out["payments"])
    return out

def progress(loan: dict) -> Decimal:
    """Share of principal repaid, as a percentage capped at 100.

    Loans are only created with a positive principal; a row that somehow
    carries zero or less reports 0 instead of dividing by it.
    """
    principal = _dec(loan.get("principal"))
    if principal <= 0:
        return Decimal("0")
    pct = loan_total_paid(loan) / principal * 100
    return min(max(pct, Decimal("0")), Decimal("100"))

def remaining(loan: dict) -> Decimal:
    return max(_dec(loan.get("principal")) - loan_total_paid(loan), Decimal("0.00"))


@dataclass(frozen=True)
class PortfolioSummary:
    total_borrowed: Decimal = Decimal("0.00")
    total_paid: Decimal = Decimal("0.00")
    total_remaining: Decimal = Decimal("0.00")
    monthly_due: Decimal = Decimal("0.00")


def portfolio_aggregate(loans) -> PortfolioSummary:
    borrowed = paid = left = due = Decimal("0.00")
    for loan in loans or []:
        borrowed += _dec(loan.get("principal"))
        paid += loan_total_paid(loan)
        left += remaining(loan)
        if is_active(loan):
            due += _dec(loan.get("monthly_payment"))
    return PortfolioSummary(total_borrowed=borrowed, total_paid=paid,
                            total_remaining=left, monthly_due=due)

# ---------------- table ----------------
FRAME_COLUMNS = ["Name", "Category", "Status", "Start Date", "Principal",
                 "Monthly Payment", "Paid", "Remaining", "Progress %"]

def loans_frame(loans) -> pd.DataFrame:
    if not loans:
        return pd.DataFrame(columns=FRAME_COLUMNS)
    rows = []
    for loan in loans:
        rows.append({
            "Name": loan.get("name") or "",
            "Category": category_label(loan.get("category")),
            "Status": loan.get("status") or "",
            "Start Date": loan.get("start_date"),
            "Principal": float(_dec(loan.get("principal"))),
            "Monthly Payment": float(_dec(loan.get("monthly_payment"))),
            "Paid": float(loan_total_paid(loan)),
            "Remaining": float(remaining(loan)),
            "Progress %": float(progress(loan)),
        })
    df = pd.DataFrame(rows, columns=FRAME_COLUMNS)
    df["Start Date"] = pd.to_datetime(df["Start Date"], errors="coerce").dt.date
    df["Progress %"] = pd.to_numeric(df["Progress %"]).round(1)
    return df

def render_summary_cards(summary: PortfolioSummary):
    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Total Borrowed", format_compact(summary.total_borrowed))
    c2.metric("Total Paid", format_compact(summary.total_paid))
    c3.metric("Outstanding", format_compact(summary.total_remaining))
    c4.metric("Monthly Due", format_compact(summary.monthly_due))

def render_loan_table(df: pd.DataFrame):
    cfg = {}
    for c in df.columns:
        if c == "Start Date":
            cfg[c] = st.column_config.DateColumn(format="DD/MM/YYYY")
        elif c == "Progress %":
            cfg[c] = st.column_config.ProgressColumn(format="%.1f%%", min_value=0, max_value=100)
        elif c in ("Principal", "Monthly Payment", "Paid", "Remaining"):
            cfg[c] = st.column_config.NumberColumn(format=f"{CURRENCY_SYMBOL}%.0f")
    st.dataframe(df, use_container_width=True, hide_index=True, column_config=cfg)

# ---------------- PDF ----------------
def build_portfolio_pdf(loans, owner_email: str = "") -> bytes:
    summary = portfolio_aggregate(loans)
    buf = BytesIO(); pp = PdfPages(buf)

    fig = plt.figure(figsize=(8.5, 11)); fig.clf(); plt.axis('off')
    title = "Loan Portfolio Statement"
    lines = [title, f"{owner_email or 'Account'} - Generated {_date.today():%b %d, %Y}", ""]
    figures = [
        f"Loans tracked:     {len(loans or [])}",
        f"Active loans:      {sum(1 for l in loans or [] if is_active(l))}",
        f"Total borrowed:    {format_currency(summary.total_borrowed)}",
        f"Total paid:        {format_currency(summary.total_paid)}",
        f"Outstanding:       {format_currency(summary.total_remaining)}",
        f"Monthly due:       {format_currency(summary.monthly_due)}",
    ]
    y = 0.95
    for s in lines:
        plt.text(0.05, y, s, ha='left', va='top', fontsize=11,
                 family='sans-serif', weight='bold' if s == title else 'normal'); y -= 0.035
    for s in figures:
        plt.text(0.05, y, s, ha='left', va='top', fontsize=10, family='monospace'); y -= 0.028
    pp.savefig(fig, bbox_inches='tight'); plt.close(fig)

    df = loans_frame(loans)
    if not df.empty:
        dfp = df.drop(columns=["Start Date"])
        for c in ("Principal", "Monthly Payment", "Paid", "Remaining"):
            dfp[c] = dfp[c].apply(format_currency)
        dfp["Progress %"] = dfp["Progress %"].map(lambda v: f"{v:.1f}%")
        rows_per_page = 24
        for start in range(0, len(dfp), rows_per_page):
            chunk = dfp.iloc[start:start + rows_per_page]
            fig = plt.figure(figsize=(8.5, 11)); ax = fig.add_subplot(111); ax.axis('off')
            ax.set_title("Loans", fontsize=12, pad=16)
            tbl = ax.table(cellText=chunk.values, colLabels=chunk.columns, loc='center')
            tbl.auto_set_font_size(False); tbl.set_fontsize(8); tbl.scale(1, 1.2)
            pp.savefig(fig, bbox_inches='tight'); plt.close(fig)
    pp.close(); buf.seek(0)
    return buf.getvalue()
