# Overview: Service-layer operations for the payment audit log; append-only before/after snapshots.

"""
Payment Audit Log

WHY: Disputes ("I already paid this") are settled by replaying exactly how
an order's payment fields changed, who changed them and when.

Entries are only ever inserted. They are flushed into the caller's
transaction so an audit row exists if and only if the change it describes
was committed.
"""

from __future__ import annotations

from ..extensions import db
from ..models import Order, PaymentAuditLog
from ..money import round_money
from ..time_utils import utcnow
from .branch_scope_service import BranchScope


ACTION_CREATED = "created"
ACTION_PAYMENT_RECEIVED = "payment_received"
ACTION_COLLECTED = "collected"
ACTION_UPDATED = "updated"

VALID_ACTIONS = [ACTION_CREATED, ACTION_PAYMENT_RECEIVED, ACTION_COLLECTED, ACTION_UPDATED]


def snapshot(order: Order) -> dict:
    """Payment fields of an order, taken before it is mutated."""
    return {
        "payment_status": order.payment_status,
        "paid_amount": round_money(order.paid_amount or 0),
        "payment_method": order.payment_method,
    }


def log_payment_change(
    order: Order,
    *,
    action: str,
    before: dict | None,
    changed_by: str | None,
    notes: str | None = None,
    transaction_id: int | None = None,
) -> PaymentAuditLog:
    """
    Append one audit entry comparing `before` with the order's current state.

    Args:
        order: Order after the change was applied
        action: created, payment_received, collected, updated
        before: snapshot() taken before the change (None for created)
        changed_by: Actor label
        notes: Free text shown to whoever investigates the history
        transaction_id: Ledger entry that carried the money, if any
    """
    if action not in VALID_ACTIONS:
        raise ValueError(f"Invalid audit action: {action}")
    before = before or {}

    entry = PaymentAuditLog(
        order_id=order.id,
        transaction_id=transaction_id,
        action=action,
        old_payment_status=before.get("payment_status"),
        new_payment_status=order.payment_status,
        old_paid_amount=before.get("paid_amount"),
        new_paid_amount=round_money(order.paid_amount or 0),
        old_payment_method=before.get("payment_method"),
        new_payment_method=order.payment_method,
        changed_by=changed_by or "System",
        changed_at=utcnow(),
        notes=notes,
    )
    db.session.add(entry)
    return entry


def get_order_history(order_id: int) -> list[PaymentAuditLog]:
    """Audit trail of one order, newest first."""
    return (
        db.session.query(PaymentAuditLog)
        .filter(PaymentAuditLog.order_id == order_id)
        .order_by(PaymentAuditLog.changed_at.desc(), PaymentAuditLog.id.desc())
        .all()
    )


def list_audit_entries(scope: BranchScope, *, action: str | None = None, limit: int = 200) -> list[PaymentAuditLog]:
    """Recent audit entries for orders inside the scope."""
    query = db.session.query(PaymentAuditLog).join(Order, Order.id == PaymentAuditLog.order_id)
    query = scope.apply(query, Order.branch_id)
    if action:
        query = query.filter(PaymentAuditLog.action == action)
    return query.order_by(PaymentAuditLog.changed_at.desc(), PaymentAuditLog.id.desc()).limit(limit).all()
