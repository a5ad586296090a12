from __future__ import annotations

from ..extensions import db
from ..money import to_string_money
from ..time_utils import to_utc_z


class Customer(db.Model):
    """
    Laundry customer. Customers are shared across branches; the branch a
    customer first visited is kept for reporting only.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("phone", name="uq_customers_phone"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)

    name = db.Column(db.String(128), nullable=False)
    phone = db.Column(db.String(32), nullable=False)
    email = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
        }


class LoyaltyAccount(db.Model):
    """
    Points balance for a customer.

    current_points is spendable; lifetime_points only grows and drives the tier.
    """
    __tablename__ = "loyalty_accounts"
    __table_args__ = (
        db.UniqueConstraint("customer_id", name="uq_loyalty_accounts_customer"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    current_points = db.Column(db.Integer, nullable=False, default=0)
    lifetime_points = db.Column(db.Integer, nullable=False, default=0)
    tier = db.Column(db.String(16), nullable=False, default="Bronze")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("loyalty_account", uselist=False, lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "customer_id": self.customer_id,
            "current_points": self.current_points,
            "lifetime_points": self.lifetime_points,
            "tier": self.tier,
            "updated_at": to_utc_z(self.updated_at),
        }


class LoyaltyTransaction(db.Model):
    """Append-only history of point movements (earned / redeemed)."""
    __tablename__ = "loyalty_transactions"
    __table_args__ = (
        db.Index("ix_loyalty_transactions_customer_created", "customer_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True, index=True)

    transaction_type = db.Column(db.String(16), nullable=False)  # earned, redeemed
    points = db.Column(db.Integer, nullable=False)  # signed
    balance_after = db.Column(db.Integer, nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=True)  # spend or discount the points relate to
    description = db.Column(db.String(255), nullable=True)
    created_by = db.Column(db.String(128), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "order_id": self.order_id,
            "transaction_type": self.transaction_type,
            "points": self.points,
            "balance_after": self.balance_after,
            "amount": to_string_money(self.amount),
            "description": self.description,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
