from __future__ import annotations

from ..extensions import db
from ..money import to_string_money
from ..time_utils import to_utc_z, utcnow


class Transaction(db.Model):
    """
    Append-only money ledger.

    WHY: paid_amount on an order is a running total; the ledger records each
    money event separately so totals can be audited after the fact.

    Types: payment (recorded at order intake), payment_received (later
    receive/collect actions), expense.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_branch_date", "branch_id", "transaction_date"),
        db.Index("ix_transactions_order_type_date", "order_id", "transaction_type", "transaction_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)

    transaction_type = db.Column(db.String(32), nullable=False, index=True)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    payment_method = db.Column(db.String(16), nullable=True)
    description = db.Column(db.String(255), nullable=True)
    created_by = db.Column(db.String(128), nullable=True)

    transaction_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    order = db.relationship("Order")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "branch_id": self.branch_id,
            "transaction_type": self.transaction_type,
            "amount": to_string_money(self.amount),
            "payment_method": self.payment_method,
            "description": self.description,
            "created_by": self.created_by,
            "transaction_date": to_utc_z(self.transaction_date),
        }


class PaymentAuditLog(db.Model):
    """
    Before/after snapshot of an order's payment fields for every change.

    Immutable: rows are only ever inserted.
    """
    __tablename__ = "payment_audit_log"
    __table_args__ = (
        db.Index("ix_payment_audit_log_order_changed", "order_id", "changed_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=True, index=True)

    action = db.Column(db.String(32), nullable=False)  # created, payment_received, collected, updated

    old_payment_status = db.Column(db.String(16), nullable=True)
    new_payment_status = db.Column(db.String(16), nullable=True)
    old_paid_amount = db.Column(db.Numeric(12, 2), nullable=True)
    new_paid_amount = db.Column(db.Numeric(12, 2), nullable=True)
    old_payment_method = db.Column(db.String(16), nullable=True)
    new_payment_method = db.Column(db.String(16), nullable=True)

    changed_by = db.Column(db.String(128), nullable=True)
    changed_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    notes = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "transaction_id": self.transaction_id,
            "action": self.action,
            "old_payment_status": self.old_payment_status,
            "new_payment_status": self.new_payment_status,
            "old_paid_amount": to_string_money(self.old_paid_amount),
            "new_paid_amount": to_string_money(self.new_paid_amount),
            "old_payment_method": self.old_payment_method,
            "new_payment_method": self.new_payment_method,
            "changed_by": self.changed_by,
            "changed_at": to_utc_z(self.changed_at),
            "notes": self.notes,
        }
