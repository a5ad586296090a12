# Overview: Service-layer operations for expenses and bank deposits; money leaving the drawer.

from __future__ import annotations

from datetime import date

from ..extensions import db
from ..models import Expense, BankDeposit
from ..money import round_money
from ..time_utils import day_bounds, utcnow
from ..validation import ValidationError
from .branch_scope_service import Actor, BranchScope
from .ledger_service import TYPE_EXPENSE, append_transaction


SOURCE_CASH = "cash"
SOURCE_BANK = "bank"
SOURCE_MPESA = "mpesa"

VALID_PAYMENT_SOURCES = [SOURCE_CASH, SOURCE_BANK, SOURCE_MPESA]


def record_expense(
    scope: BranchScope,
    actor: Actor,
    *,
    amount,
    category: str,
    description: str | None = None,
    payment_source: str = SOURCE_CASH,
) -> Expense:
    """
    Record an expense against the caller's branch, plus its ledger entry.

    Raises:
        BranchScopeError: No concrete branch (never defaults to all branches)
        ValidationError: Bad amount, category or payment source
    """
    branch_id = scope.require_branch()
    value = round_money(amount)
    if value <= 0:
        raise ValidationError("amount must be greater than 0")
    if not category or not str(category).strip():
        raise ValidationError("category is required")
    if payment_source not in VALID_PAYMENT_SOURCES:
        raise ValidationError(f"Invalid payment source: {payment_source}. Must be one of {VALID_PAYMENT_SOURCES}")

    now = utcnow()
    expense = Expense(
        branch_id=branch_id,
        amount=value,
        category=str(category).strip(),
        description=description,
        payment_source=payment_source,
        expense_date=now,
        created_by=actor.label,
    )
    db.session.add(expense)
    try:
        append_transaction(
            transaction_type=TYPE_EXPENSE,
            amount=value,
            branch_id=branch_id,
            payment_method=payment_source,
            description=f"Expense: {expense.category}",
            created_by=actor.label,
            occurred_at=now,
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return expense


def record_bank_deposit(
    scope: BranchScope,
    actor: Actor,
    *,
    amount,
    reference: str | None = None,
    bank_name: str | None = None,
) -> BankDeposit:
    """
    Record cash banked from the caller's branch drawer.

    Raises:
        BranchScopeError: No concrete branch
        ValidationError: Non-positive amount
    """
    branch_id = scope.require_branch()
    value = round_money(amount)
    if value <= 0:
        raise ValidationError("amount must be greater than 0")

    deposit = BankDeposit(
        branch_id=branch_id,
        amount=value,
        reference=reference,
        bank_name=bank_name,
        deposit_date=utcnow(),
        created_by=actor.label,
    )
    db.session.add(deposit)
    db.session.commit()
    return deposit


def list_expenses(scope: BranchScope, start: date, end: date) -> list[Expense]:
    """Expenses between start and end (inclusive), legacy rows included."""
    query = db.session.query(Expense).filter(
        Expense.expense_date >= day_bounds(start)[0],
        Expense.expense_date < day_bounds(end)[1],
    )
    query = scope.apply_including_legacy(query, Expense.branch_id)
    return query.order_by(Expense.expense_date.desc(), Expense.id.desc()).all()


def list_bank_deposits(scope: BranchScope, start: date, end: date) -> list[BankDeposit]:
    query = db.session.query(BankDeposit).filter(
        BankDeposit.deposit_date >= day_bounds(start)[0],
        BankDeposit.deposit_date < day_bounds(end)[1],
    )
    query = scope.apply(query, BankDeposit.branch_id)
    return query.order_by(BankDeposit.deposit_date.desc(), BankDeposit.id.desc()).all()
