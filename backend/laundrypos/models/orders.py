from __future__ import annotations

from ..extensions import db
from ..money import to_string_money
from ..time_utils import to_utc_z, to_iso_date, utcnow


class Order(db.Model):
    """
    One sold service/item. Lines sharing receipt_number and branch_id make up
    a receipt; payment and collection always act on the whole receipt.

    branch_id is NULL only on legacy rows created before branches existed.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.CheckConstraint("paid_amount >= 0", name="ck_orders_paid_non_negative"),
        db.Index("ix_orders_branch_receipt", "branch_id", "receipt_number"),
        db.Index("ix_orders_branch_order_date", "branch_id", "order_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    receipt_number = db.Column(db.String(64), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)

    item_name = db.Column(db.String(128), nullable=False)
    service_type = db.Column(db.String(64), nullable=True)  # wash, dry_clean, iron...
    quantity = db.Column(db.Integer, nullable=False, default=1)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    # Money (2 decimals)
    total_amount = db.Column(db.Numeric(12, 2), nullable=False)
    paid_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    payment_status = db.Column(db.String(16), nullable=False, default="not_paid", index=True)  # not_paid, advance, paid_full
    payment_method = db.Column(db.String(16), nullable=False, default="cash")  # cash, card, mobile_money, book
    status = db.Column(db.String(16), nullable=False, default="pending", index=True)  # pending, processing, ready, collected

    order_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    due_date = db.Column(db.Date, nullable=True)
    ready_date = db.Column(db.DateTime(timezone=True), nullable=True)
    collected_date = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by = db.Column(db.String(128), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("orders", lazy=True))
    branch = db.relationship("Branch")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "receipt_number": self.receipt_number,
            "customer_id": self.customer_id,
            "branch_id": self.branch_id,
            "item_name": self.item_name,
            "service_type": self.service_type,
            "quantity": self.quantity,
            "unit_price": to_string_money(self.unit_price),
            "total_amount": to_string_money(self.total_amount),
            "paid_amount": to_string_money(self.paid_amount),
            "payment_status": self.payment_status,
            "payment_method": self.payment_method,
            "status": self.status,
            "order_date": to_utc_z(self.order_date),
            "due_date": to_iso_date(self.due_date),
            "ready_date": to_utc_z(self.ready_date) if self.ready_date else None,
            "collected_date": to_utc_z(self.collected_date) if self.collected_date else None,
            "created_by": self.created_by,
            "notes": self.notes,
            "version_id": self.version_id,
        }


class ReceiptNumber(db.Model):
    """
    Issued receipt numbers.

    WHY: Receipts are not stored rows, so uniqueness of a receipt number per
    branch is enforced here. A generator that loses the race hits the unique
    constraint and regenerates.
    """
    __tablename__ = "receipt_numbers"
    __table_args__ = (
        db.UniqueConstraint("branch_id", "receipt_number", name="uq_receipt_numbers_branch_number"),
        db.UniqueConstraint("branch_id", "business_date", "sequence", name="uq_receipt_numbers_branch_day_seq"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False)
    business_date = db.Column(db.Date, nullable=False)
    sequence = db.Column(db.Integer, nullable=False)
    receipt_number = db.Column(db.String(64), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "branch_id": self.branch_id,
            "business_date": to_iso_date(self.business_date),
            "sequence": self.sequence,
            "receipt_number": self.receipt_number,
        }
