from __future__ import annotations

from ..extensions import db
from ..money import to_string_money
from ..time_utils import to_utc_z, to_iso_date, utcnow


class Expense(db.Model):
    """
    Money leaving the business, tagged with where it was paid from.

    branch_id NULL marks a legacy expense; those count for every branch.
    """
    __tablename__ = "expenses"
    __table_args__ = (
        db.CheckConstraint("amount > 0", name="ck_expenses_amount_positive"),
        db.Index("ix_expenses_branch_date", "branch_id", "expense_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)

    amount = db.Column(db.Numeric(12, 2), nullable=False)
    category = db.Column(db.String(64), nullable=False)
    description = db.Column(db.String(255), nullable=True)
    payment_source = db.Column(db.String(16), nullable=False, default="cash")  # cash, bank, mpesa

    expense_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    created_by = db.Column(db.String(128), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "amount": to_string_money(self.amount),
            "category": self.category,
            "description": self.description,
            "payment_source": self.payment_source,
            "expense_date": to_utc_z(self.expense_date),
            "created_by": self.created_by,
        }


class BankDeposit(db.Model):
    """Cash taken out of the drawer and banked."""
    __tablename__ = "bank_deposits"
    __table_args__ = (
        db.CheckConstraint("amount > 0", name="ck_bank_deposits_amount_positive"),
        db.Index("ix_bank_deposits_branch_date", "branch_id", "deposit_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False)

    amount = db.Column(db.Numeric(12, 2), nullable=False)
    reference = db.Column(db.String(64), nullable=True)
    bank_name = db.Column(db.String(128), nullable=True)

    deposit_date = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    created_by = db.Column(db.String(128), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "amount": to_string_money(self.amount),
            "reference": self.reference,
            "bank_name": self.bank_name,
            "deposit_date": to_utc_z(self.deposit_date),
            "created_by": self.created_by,
        }


class DailyCashSummary(db.Model):
    """
    Saved cash position of one branch for one business date.

    WHY: The summary is computed from source rows on every read; saving it
    freezes the figures so the next day can open from closing_balance, and
    reconciling locks it for good.

    Lifecycle: (computed, not stored) -> saved -> reconciled
    """
    __tablename__ = "daily_cash_summaries"
    __table_args__ = (
        db.UniqueConstraint("date", "branch_id", name="uq_daily_cash_summaries_date_branch"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    date = db.Column(db.Date, nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    opening_balance = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    cash_sales = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    book_sales = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    card_sales = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    mobile_money_sales = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    bank_deposits = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    expenses_from_cash = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    expenses_from_bank = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    expenses_from_mpesa = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    cash_in_hand = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    closing_balance = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    # Manual adjustment figures entered by staff
    bank_payments = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    mpesa_received = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    mpesa_paid = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    is_reconciled = db.Column(db.Boolean, nullable=False, default=False)
    reconciled_by = db.Column(db.String(128), nullable=True)
    reconciled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by = db.Column(db.String(128), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    branch = db.relationship("Branch")
    __mapper_args__ = {"version_id_col": version_id}

    MONEY_FIELDS = (
        "opening_balance", "cash_sales", "book_sales", "card_sales", "mobile_money_sales",
        "bank_deposits", "expenses_from_cash", "expenses_from_bank", "expenses_from_mpesa",
        "cash_in_hand", "closing_balance", "bank_payments", "mpesa_received", "mpesa_paid",
    )

    def to_dict(self) -> dict:
        data = {
            "id": self.id,
            "date": to_iso_date(self.date),
            "branch_id": self.branch_id,
            "notes": self.notes,
            "state": "reconciled" if self.is_reconciled else "saved",
            "is_reconciled": self.is_reconciled,
            "reconciled_by": self.reconciled_by,
            "reconciled_at": to_utc_z(self.reconciled_at) if self.reconciled_at else None,
            "created_by": self.created_by,
            "updated_at": to_utc_z(self.updated_at),
        }
        for name in self.MONEY_FIELDS:
            data[name] = to_string_money(getattr(self, name))
        return data
