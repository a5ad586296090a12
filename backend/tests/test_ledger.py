from datetime import timedelta
from decimal import Decimal

import pytest

from laundrypos.models import Order, Transaction
from laundrypos.services import expense_service, ledger_service, receipt_service
from laundrypos.services.branch_scope_service import BranchScope, resolve_scope
from laundrypos.time_utils import business_today, utcnow


ITEMS = [{"item_name": "Shirt", "unit_price": 1000}, {"item_name": "Trousers", "unit_price": 2000}]


@pytest.fixture
def receipt(db_session, scope_a, cashier_a, customer):
    return receipt_service.create_receipt(
        scope_a, cashier_a, customer_id=customer.id, items=ITEMS, paid_amount=Decimal("1000"),
    )


# =============================================================================
# DUPLICATE GUARD
# =============================================================================

def test_same_payment_twice_is_recorded_once(db_session, receipt):
    order = receipt.lines[0]
    ledger_service.record_payment_received(order, Decimal("500"), "cash", "Cashier A")
    db_session.commit()

    with pytest.raises(ledger_service.DuplicatePaymentError):
        ledger_service.record_payment_received(order, Decimal("500.00"), "cash", "Cashier A")
    db_session.rollback()

    received = db_session.query(Transaction).filter_by(transaction_type="payment_received").all()
    assert len(received) == 1


def test_different_amount_is_not_a_duplicate(db_session, receipt):
    order = receipt.lines[0]
    ledger_service.record_payment_received(order, Decimal("500"), "cash", None)
    ledger_service.record_payment_received(order, Decimal("400"), "cash", None)
    db_session.commit()

    assert db_session.query(Transaction).filter_by(transaction_type="payment_received").count() == 2


def test_payment_outside_window_is_not_a_duplicate(db_session, receipt, branch_a):
    order = receipt.lines[0]
    ledger_service.append_transaction(
        transaction_type=ledger_service.TYPE_PAYMENT_RECEIVED,
        amount=Decimal("500"),
        branch_id=branch_a.id,
        order_id=order.id,
        occurred_at=utcnow() - timedelta(seconds=120),
    )
    db_session.commit()

    assert ledger_service.is_duplicate_payment(order.id, Decimal("500")) is False
    assert ledger_service.is_duplicate_payment(order.id, Decimal("500"), utcnow() - timedelta(seconds=90)) is True


def test_intake_payment_does_not_trigger_guard(db_session, receipt):
    assert ledger_service.is_duplicate_payment(receipt.lines[0].id, Decimal("1000")) is False


def test_append_rejects_bad_entries(db_session, branch_a):
    with pytest.raises(ValueError):
        ledger_service.append_transaction(transaction_type="refund", amount=10, branch_id=branch_a.id)
    with pytest.raises(ValueError):
        ledger_service.append_transaction(transaction_type="payment", amount=0, branch_id=branch_a.id)


# =============================================================================
# QUERIES
# =============================================================================

def test_transactions_are_branch_scoped(db_session, receipt, scope_a, scope_b, admin):
    assert len(ledger_service.list_transactions(scope_a)) == 1
    assert ledger_service.list_transactions(scope_b) == []
    assert len(ledger_service.list_transactions(resolve_scope(admin))) == 1
    assert ledger_service.list_transactions(BranchScope()) == []


def test_daily_income_summary(db_session, receipt, scope_a, cashier_a):
    receipt_service.receive_receipt_payment(
        scope_a, cashier_a, receipt.receipt_number, payment_amount=Decimal("2000"), payment_method="card",
    )
    expense_service.record_expense(scope_a, cashier_a, amount=Decimal("300"), category="detergent")

    summary = ledger_service.daily_income_summary(scope_a, business_today())

    assert summary["total_income"] == "3000.00"
    assert summary["cash_income"] == "1000.00"
    assert summary["non_cash_income"] == "2000.00"
    assert summary["income_by_method"] == {"card": "2000.00", "cash": "1000.00"}
    assert summary["total_expenses"] == "300.00"
    assert summary["net_income"] == "2700.00"


# =============================================================================
# INTEGRITY AUDIT
# =============================================================================

def test_consistent_receipts_produce_no_warnings(db_session, receipt, scope_a, cashier_a):
    receipt_service.collect_receipt(scope_a, cashier_a, receipt.receipt_number, payment_amount=Decimal("2000"))

    report = ledger_service.audit_ledger_integrity(scope_a)

    assert report["receipts_checked"] == 1
    assert report["orders_checked"] == 2
    assert report["warnings"] == []


def test_paid_amount_without_ledger_entry_is_flagged(db_session, receipt, scope_a):
    line = db_session.get(Order, receipt.lines[1].id)
    line.paid_amount = Decimal("2000")
    db_session.commit()

    report = ledger_service.audit_ledger_integrity(scope_a, day=business_today())

    assert len(report["warnings"]) == 1
    warning = report["warnings"][0]
    assert warning.receipt_number == receipt.receipt_number
    assert warning.paid_amount == "2333.33"
    assert warning.ledger_total == "1000.00"
    assert warning.difference == "1333.33"


def test_audit_only_reads(db_session, receipt, scope_a):
    before = db_session.query(Transaction).count()
    ledger_service.audit_ledger_integrity(scope_a)
    assert db_session.query(Transaction).count() == before
