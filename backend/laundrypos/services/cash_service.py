# Overview: Service-layer operations for daily cash management; branch-day summaries, save and reconcile.

"""
Daily Cash Calculator & Reconciliation

WHY: At the end of each day a branch counts its drawer. The expected cash
position is derived from orders, the ledger, expenses and bank deposits;
saving it lets the next day open from today's closing balance, and
reconciling locks the day.

STATES (per branch and date):
- computed: figures derived on read, nothing stored
- saved: row upserted by an explicit save (figures always recomputed)
- reconciled: terminal; carries who reconciled and when

FORMULA:
    cash_in_hand = opening_balance + cash_sales + book_sales
                   - expenses_from_cash - bank_deposits
    closing_balance = cash_in_hand
    opening_balance(D) = closing_balance(D-1) of a saved row, else 0

cash_sales (paid in full in cash at intake) and book_sales (cash received
later through receive-payment / collection) are reported separately.
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import Decimal

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..models import Order, Transaction, Expense, BankDeposit, DailyCashSummary
from ..money import D, ZERO, round_money, to_string_money
from ..time_utils import utcnow, business_today, day_bounds
from ..validation import ValidationError, ConflictError
from . import notification_service
from .branch_scope_service import Actor, BranchScope, get_branch
from .concurrency import lock_for_update, run_with_retry
from .expense_service import SOURCE_CASH, SOURCE_BANK, SOURCE_MPESA
from .ledger_service import TYPE_PAYMENT_RECEIVED
from .payment_service import METHOD_CASH, METHOD_CARD, METHOD_MOBILE_MONEY, PAYMENT_STATUS_PAID_FULL


STATE_COMPUTED = "computed"
STATE_SAVED = "saved"
STATE_RECONCILED = "reconciled"

COMPUTED_FIELDS = (
    "opening_balance", "cash_sales", "book_sales", "card_sales", "mobile_money_sales",
    "bank_deposits", "expenses_from_cash", "expenses_from_bank", "expenses_from_mpesa",
    "cash_in_hand", "closing_balance",
)

MANUAL_FIELDS = ("bank_payments", "mpesa_received", "mpesa_paid")

# Upserts may race on the (date, branch_id) unique constraint
SAVE_RETRY_ERRORS = (OperationalError, StaleDataError, IntegrityError)


# =============================================================================
# CALCULATION
# =============================================================================

def _total(query) -> Decimal:
    return round_money(D(query.scalar() or 0))


def opening_balance_for(branch_id: int, day: date) -> Decimal:
    previous = (
        db.session.query(DailyCashSummary)
        .filter(DailyCashSummary.branch_id == branch_id, DailyCashSummary.date == day - timedelta(days=1))
        .first()
    )
    return round_money(previous.closing_balance) if previous else ZERO


def _ledger_received(branch_id: int, start, end, method: str) -> Decimal:
    return _total(
        db.session.query(func.sum(Transaction.amount)).filter(
            Transaction.branch_id == branch_id,
            Transaction.transaction_type == TYPE_PAYMENT_RECEIVED,
            Transaction.payment_method == method,
            Transaction.transaction_date >= start,
            Transaction.transaction_date < end,
        )
    )


def compute_daily_figures(branch_id: int, day: date) -> dict:
    """
    Derive every computed field of a branch-day from source rows.

    Legacy expenses with no branch count for every branch; all other
    sources match the branch exactly.
    """
    start, end = day_bounds(day)
    opening = opening_balance_for(branch_id, day)

    cash_sales = _total(
        db.session.query(func.sum(Order.paid_amount)).filter(
            Order.branch_id == branch_id,
            Order.payment_status == PAYMENT_STATUS_PAID_FULL,
            Order.payment_method == METHOD_CASH,
            Order.order_date >= start,
            Order.order_date < end,
        )
    )
    book_sales = _ledger_received(branch_id, start, end, METHOD_CASH)
    card_sales = _ledger_received(branch_id, start, end, METHOD_CARD)
    mobile_money_sales = _ledger_received(branch_id, start, end, METHOD_MOBILE_MONEY)

    expense_rows = (
        db.session.query(Expense.payment_source, func.sum(Expense.amount))
        .filter(
            (Expense.branch_id == branch_id) | (Expense.branch_id.is_(None)),
            Expense.expense_date >= start,
            Expense.expense_date < end,
        )
        .group_by(Expense.payment_source)
        .all()
    )
    expenses = {source: round_money(D(amount or 0)) for source, amount in expense_rows}

    bank_deposits = _total(
        db.session.query(func.sum(BankDeposit.amount)).filter(
            BankDeposit.branch_id == branch_id,
            BankDeposit.deposit_date >= start,
            BankDeposit.deposit_date < end,
        )
    )

    expenses_from_cash = expenses.get(SOURCE_CASH, ZERO)
    cash_in_hand = round_money(opening + cash_sales + book_sales - expenses_from_cash - bank_deposits)

    return {
        "opening_balance": opening,
        "cash_sales": cash_sales,
        "book_sales": book_sales,
        "card_sales": card_sales,
        "mobile_money_sales": mobile_money_sales,
        "bank_deposits": bank_deposits,
        "expenses_from_cash": expenses_from_cash,
        "expenses_from_bank": expenses.get(SOURCE_BANK, ZERO),
        "expenses_from_mpesa": expenses.get(SOURCE_MPESA, ZERO),
        "cash_in_hand": cash_in_hand,
        "closing_balance": cash_in_hand,
    }


def _computed_view(branch_id: int, day: date) -> dict:
    figures = compute_daily_figures(branch_id, day)
    view = {name: to_string_money(value) for name, value in figures.items()}
    view.update({
        "id": None,
        "date": day.isoformat(),
        "branch_id": branch_id,
        "state": STATE_COMPUTED,
        "bank_payments": to_string_money(ZERO),
        "mpesa_received": to_string_money(figures["mobile_money_sales"]),
        "mpesa_paid": to_string_money(ZERO),
        "notes": None,
        "is_reconciled": False,
        "reconciled_by": None,
        "reconciled_at": None,
    })
    return view


# =============================================================================
# READS
# =============================================================================

def _stored(branch_id: int, day: date, *, lock: bool = False) -> DailyCashSummary | None:
    query = db.session.query(DailyCashSummary).filter(
        DailyCashSummary.branch_id == branch_id, DailyCashSummary.date == day,
    )
    if lock:
        query = lock_for_update(query)
    return query.first()


def get_daily_summary(scope: BranchScope, day: date) -> dict:
    """Saved row for the branch-day if there is one, otherwise freshly computed figures."""
    branch_id = scope.require_branch()
    row = _stored(branch_id, day)
    return row.to_dict() if row else _computed_view(branch_id, day)


def get_today_summary(scope: BranchScope) -> dict:
    """Live figures for today; a reconciled day returns its locked row instead."""
    branch_id = scope.require_branch()
    day = business_today()
    view = _computed_view(branch_id, day)
    row = _stored(branch_id, day)
    if row is not None and row.is_reconciled:
        return row.to_dict()
    if row is not None:
        view.update({"id": row.id, "state": STATE_SAVED, "notes": row.notes})
        for name in MANUAL_FIELDS:
            view[name] = to_string_money(getattr(row, name))
    return view


def list_summaries(scope: BranchScope, start: date, end: date) -> list[DailyCashSummary]:
    """Saved summaries between start and end (inclusive) inside the scope."""
    if end < start:
        raise ValidationError("end date must not be before start date")
    query = db.session.query(DailyCashSummary).filter(
        DailyCashSummary.date >= start, DailyCashSummary.date <= end,
    )
    query = scope.apply(query, DailyCashSummary.branch_id)
    return query.order_by(DailyCashSummary.date.asc(), DailyCashSummary.branch_id.asc()).all()


# =============================================================================
# SAVE / RECONCILE
# =============================================================================

def _apply_figures(row: DailyCashSummary, figures: dict) -> None:
    for name in COMPUTED_FIELDS:
        setattr(row, name, figures[name])


def _apply_manual(row: DailyCashSummary, manual: dict, figures: dict, *, is_new: bool) -> None:
    for name in MANUAL_FIELDS:
        if manual.get(name) is not None:
            setattr(row, name, round_money(manual[name]))
        elif is_new:
            default = figures["mobile_money_sales"] if name == "mpesa_received" else ZERO
            setattr(row, name, default)
    if "notes" in manual:
        row.notes = manual["notes"]


def _upsert_locked(branch_id: int, day: date, actor: Actor, manual: dict) -> DailyCashSummary:
    row = _stored(branch_id, day, lock=True)
    if row is not None and row.is_reconciled:
        raise ConflictError(f"Cash summary for {day.isoformat()} is already reconciled and cannot be changed")

    figures = compute_daily_figures(branch_id, day)
    is_new = row is None
    if is_new:
        row = DailyCashSummary(date=day, branch_id=branch_id, created_by=actor.label, is_reconciled=False)
        db.session.add(row)
    _apply_figures(row, figures)
    _apply_manual(row, manual, figures, is_new=is_new)
    db.session.flush()
    return row


def save_daily_summary(scope: BranchScope, actor: Actor, day: date, manual: dict | None = None) -> DailyCashSummary:
    """
    Recompute and upsert the branch-day summary.

    Only the manual fields (bank_payments, mpesa_received, mpesa_paid,
    notes) are taken from the caller; every computed figure comes from
    source data.

    Raises:
        BranchScopeError: No concrete branch
        ConflictError: Day already reconciled
    """
    branch_id = scope.require_branch()
    manual = manual or {}

    def _op():
        try:
            row = _upsert_locked(branch_id, day, actor, manual)
            db.session.commit()
            return row
        except Exception:
            db.session.rollback()
            raise

    return run_with_retry(_op, retry_on=SAVE_RETRY_ERRORS)


def reconcile_day(scope: BranchScope, actor: Actor, day: date, *, notes: str | None = None) -> dict:
    """
    Lock a branch-day. Saves it first if it was never saved.

    The closing report is sent after commit; whether it went out is
    returned as report_sent and never affects the reconciliation.

    Raises:
        BranchScopeError: No concrete branch
        ConflictError: Day already reconciled
    """
    branch_id = scope.require_branch()

    def _op():
        try:
            row = _stored(branch_id, day, lock=True)
            if row is None:
                manual = {"notes": notes} if notes is not None else {}
                row = _upsert_locked(branch_id, day, actor, manual)
            elif row.is_reconciled:
                raise ConflictError(f"Cash summary for {day.isoformat()} is already reconciled")
            elif notes is not None:
                row.notes = notes

            row.is_reconciled = True
            row.reconciled_by = actor.label
            row.reconciled_at = utcnow()
            db.session.commit()
            return row
        except Exception:
            db.session.rollback()
            raise

    row = run_with_retry(_op, retry_on=SAVE_RETRY_ERRORS)
    summary = row.to_dict()
    report_sent = _send_closing_report(summary, branch_id)
    return {"summary": summary, "report_sent": report_sent}


def _send_closing_report(summary: dict, branch_id: int) -> bool:
    try:
        recipient = current_app.config.get("DAILY_REPORT_RECIPIENT")
        branch = get_branch(branch_id)
        message = notification_service.daily_report_message(summary, branch.name if branch else None)
        return notification_service.dispatch(
            notification_service.KIND_DAILY_REPORT, recipient, message, branch_id=branch_id,
        )
    except Exception:
        current_app.logger.exception("Failed to send daily closing report for %s", summary.get("date"))
        return False
