# Overview: Service-layer operations for the money ledger; append-only entries, duplicate guard, integrity audit.

"""
Transaction Ledger

WHY: An order's paid_amount is a running total that gets overwritten. The
ledger keeps one row per money event (the amount received in that action,
never the cumulative total) so the running totals can be audited.

DESIGN PRINCIPLES:
- Append-only: no update/delete helpers exist
- Entries are flushed, not committed; the caller commits them together
  with the order updates they belong to
- Duplicate guard: same order + amount within the window is rejected.
  This is a heuristic for client resubmits (offline replay queues), not a
  lock; receipt row locks are the real protection against races
- Integrity audit is read-only and reports warnings, never raises
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass, asdict
from datetime import date, datetime, timedelta

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..models import Order, Transaction, Expense
from ..money import D, TOLERANCE, round_money, sum_money, to_string_money
from ..time_utils import utcnow, day_bounds
from ..validation import ConflictError
from .branch_scope_service import BranchScope
from .payment_service import METHOD_CASH


class DuplicatePaymentError(ConflictError):
    """Raised when the same payment was already recorded moments ago."""
    pass


# =============================================================================
# TRANSACTION TYPES (CONSTANTS)
# =============================================================================

TYPE_PAYMENT = "payment"                    # paid at order intake
TYPE_PAYMENT_RECEIVED = "payment_received"  # receive-payment / collection
TYPE_EXPENSE = "expense"

VALID_TRANSACTION_TYPES = [TYPE_PAYMENT, TYPE_PAYMENT_RECEIVED, TYPE_EXPENSE]

INCOME_TYPES = (TYPE_PAYMENT, TYPE_PAYMENT_RECEIVED)

DEFAULT_DUPLICATE_WINDOW_SECONDS = 60


# =============================================================================
# DUPLICATE GUARD
# =============================================================================

def _duplicate_window() -> timedelta:
    seconds = current_app.config.get("DUPLICATE_PAYMENT_WINDOW_SECONDS", DEFAULT_DUPLICATE_WINDOW_SECONDS)
    return timedelta(seconds=seconds)


def find_duplicate_payment(order_id: int, amount, at: datetime | None = None) -> Transaction | None:
    """
    Existing payment_received entry for the same order and amount within the
    window either side of `at` (default now), if any.
    """
    at = at or utcnow()
    window = _duplicate_window()
    target = round_money(amount)

    candidates = (
        db.session.query(Transaction)
        .filter(
            Transaction.order_id == order_id,
            Transaction.transaction_type == TYPE_PAYMENT_RECEIVED,
            Transaction.transaction_date >= at - window,
            Transaction.transaction_date <= at + window,
        )
        .all()
    )
    for entry in candidates:
        if round_money(entry.amount) == target:
            return entry
    return None


def is_duplicate_payment(order_id: int, amount, at: datetime | None = None) -> bool:
    return find_duplicate_payment(order_id, amount, at) is not None


# =============================================================================
# LEDGER WRITES
# =============================================================================

def append_transaction(
    *,
    transaction_type: str,
    amount,
    branch_id: int | None,
    payment_method: str | None = None,
    order_id: int | None = None,
    description: str | None = None,
    created_by: str | None = None,
    occurred_at: datetime | None = None,
) -> Transaction:
    """
    Add one ledger entry to the session (flushed, not committed).

    Raises:
        ValueError: Unknown transaction type or non-positive amount
    """
    if transaction_type not in VALID_TRANSACTION_TYPES:
        raise ValueError(f"Invalid transaction type: {transaction_type}")
    value = round_money(amount)
    if value <= 0:
        raise ValueError("Ledger amount must be positive")

    entry = Transaction(
        order_id=order_id,
        branch_id=branch_id,
        transaction_type=transaction_type,
        amount=value,
        payment_method=payment_method,
        description=description,
        created_by=created_by,
        transaction_date=occurred_at or utcnow(),
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def record_payment_received(order: Order, amount, payment_method: str, created_by: str | None) -> Transaction:
    """
    Ledger entry for money received after intake (receive-payment, collection).

    The entry is attributed to `order` (the first line of a receipt) and
    carries the amount received in this action only.

    Raises:
        DuplicatePaymentError: Same order and amount already recorded within the window
    """
    now = utcnow()
    if find_duplicate_payment(order.id, amount, now) is not None:
        raise DuplicatePaymentError(
            "Duplicate payment detected: the same amount was recorded for this receipt moments ago"
        )
    return append_transaction(
        transaction_type=TYPE_PAYMENT_RECEIVED,
        amount=amount,
        branch_id=order.branch_id,
        payment_method=payment_method,
        order_id=order.id,
        description=f"Payment for receipt {order.receipt_number}",
        created_by=created_by,
        occurred_at=now,
    )


# =============================================================================
# LEDGER QUERIES
# =============================================================================

def list_transactions(
    scope: BranchScope,
    *,
    start: date | None = None,
    end: date | None = None,
    transaction_type: str | None = None,
    limit: int = 500,
) -> list[Transaction]:
    """Ledger entries inside the scope, newest first. `end` is inclusive."""
    query = scope.apply(db.session.query(Transaction), Transaction.branch_id)
    if start is not None:
        query = query.filter(Transaction.transaction_date >= day_bounds(start)[0])
    if end is not None:
        query = query.filter(Transaction.transaction_date < day_bounds(end)[1])
    if transaction_type:
        query = query.filter(Transaction.transaction_type == transaction_type)
    return query.order_by(Transaction.transaction_date.desc(), Transaction.id.desc()).limit(limit).all()


def get_order_transactions(order_id: int) -> list[Transaction]:
    return (
        db.session.query(Transaction)
        .filter(Transaction.order_id == order_id)
        .order_by(Transaction.transaction_date.asc(), Transaction.id.asc())
        .all()
    )


def daily_income_summary(scope: BranchScope, day: date) -> dict:
    """
    Income vs expenses for one business date.

    Income counts intake payments and later receipts; expenses include
    legacy rows with no branch.
    """
    start, end = day_bounds(day)

    income_rows = (
        scope.apply(db.session.query(Transaction.payment_method, func.sum(Transaction.amount)), Transaction.branch_id)
        .filter(
            Transaction.transaction_type.in_(INCOME_TYPES),
            Transaction.transaction_date >= start,
            Transaction.transaction_date < end,
        )
        .group_by(Transaction.payment_method)
        .all()
    )
    by_method = {method or METHOD_CASH: round_money(D(total or 0)) for method, total in income_rows}
    total_income = sum_money(by_method.values())
    cash_income = by_method.get(METHOD_CASH, round_money(0))

    expense_total = (
        scope.apply_including_legacy(db.session.query(func.sum(Expense.amount)), Expense.branch_id)
        .filter(Expense.expense_date >= start, Expense.expense_date < end)
        .scalar()
    )
    total_expenses = round_money(D(expense_total or 0))

    return {
        "date": day.isoformat(),
        "total_income": to_string_money(total_income),
        "cash_income": to_string_money(cash_income),
        "non_cash_income": to_string_money(total_income - cash_income),
        "income_by_method": {method: to_string_money(v) for method, v in sorted(by_method.items())},
        "total_expenses": to_string_money(total_expenses),
        "net_income": to_string_money(total_income - total_expenses),
    }


# =============================================================================
# INTEGRITY AUDIT (READ-ONLY)
# =============================================================================

@dataclass(frozen=True)
class IntegrityWarning:
    """Receipt whose recorded paid total disagrees with its ledger entries."""
    branch_id: int | None
    receipt_number: str
    order_ids: tuple
    paid_amount: str
    ledger_total: str
    difference: str

    def to_dict(self) -> dict:
        data = asdict(self)
        data["order_ids"] = list(self.order_ids)
        return data


def audit_ledger_integrity(scope: BranchScope, *, day: date | None = None) -> dict:
    """
    Compare Σ line.paid_amount against Σ ledger income entries per receipt.

    Receipt-level payments are attributed to the first line, so the
    comparison is made per receipt, not per line. Mismatches beyond the
    0.01 tolerance are returned as warnings.
    """
    query = scope.apply(db.session.query(Order), Order.branch_id)
    if day is not None:
        start, end = day_bounds(day)
        query = query.filter(Order.order_date >= start, Order.order_date < end)
    orders = query.order_by(Order.id.asc()).all()

    receipts: "OrderedDict[tuple, list[Order]]" = OrderedDict()
    for order in orders:
        receipts.setdefault((order.branch_id, order.receipt_number), []).append(order)

    ledger_by_order: dict[int, object] = {}
    order_ids = [o.id for o in orders]
    if order_ids:
        rows = (
            db.session.query(Transaction.order_id, func.sum(Transaction.amount))
            .filter(Transaction.order_id.in_(order_ids), Transaction.transaction_type.in_(INCOME_TYPES))
            .group_by(Transaction.order_id)
            .all()
        )
        ledger_by_order = {order_id: total for order_id, total in rows}

    warnings: list[IntegrityWarning] = []
    for (branch_id, receipt_number), lines in receipts.items():
        paid = sum_money(line.paid_amount for line in lines)
        ledger_total = sum_money(ledger_by_order.get(line.id) for line in lines)
        difference = round_money(abs(paid - ledger_total))
        if difference > TOLERANCE:
            warnings.append(IntegrityWarning(
                branch_id=branch_id,
                receipt_number=receipt_number,
                order_ids=tuple(line.id for line in lines),
                paid_amount=to_string_money(paid),
                ledger_total=to_string_money(ledger_total),
                difference=to_string_money(difference),
            ))

    return {
        "receipts_checked": len(receipts),
        "orders_checked": len(orders),
        "warnings": warnings,
    }
