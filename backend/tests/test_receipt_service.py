from datetime import timedelta
from decimal import Decimal

import pytest

from laundrypos.extensions import db
from laundrypos.models import Order, PaymentAuditLog, ReceiptNumber, Transaction
from laundrypos.services import receipt_service, ledger_service
from laundrypos.services.branch_scope_service import (
    BranchScope, BranchScopeError, FEATURE_LOYALTY, resolve_scope, set_branch_feature,
)
from laundrypos.time_utils import business_today
from laundrypos.validation import ValidationError, ConflictError, NotFoundError


TWO_ITEMS = [
    {"item_name": "Shirt", "service_type": "wash", "quantity": 1, "unit_price": 1000},
    {"item_name": "Suit", "service_type": "dry_clean", "quantity": 1, "unit_price": 2000},
]


def _receipt(scope, actor, customer, **kwargs):
    return receipt_service.create_receipt(scope, actor, customer_id=customer.id, items=TWO_ITEMS, **kwargs)


def _order(customer, receipt_number, branch_id, total, **kwargs):
    order = Order(
        receipt_number=receipt_number,
        customer_id=customer.id,
        branch_id=branch_id,
        item_name=kwargs.pop("item_name", "Bedsheet"),
        quantity=1,
        unit_price=total,
        total_amount=total,
        paid_amount=kwargs.pop("paid_amount", 0),
        payment_status=kwargs.pop("payment_status", "not_paid"),
        payment_method="cash",
        **kwargs,
    )
    db.session.add(order)
    db.session.commit()
    return order


# =============================================================================
# INTAKE
# =============================================================================

def test_create_receipt_groups_items_under_one_number(db_session, scope_a, cashier_a, customer, branch_a):
    receipt = _receipt(scope_a, cashier_a, customer)

    today = business_today()
    assert receipt.receipt_number == f"1-{today.day:02d}-{today.month:02d} ({today.year % 100:02d})"
    assert len(receipt.lines) == 2
    assert {line.branch_id for line in receipt.lines} == {branch_a.id}
    assert receipt.total == Decimal("3000.00")
    assert receipt.balance_due == Decimal("3000.00")
    assert all(line.payment_status == "not_paid" for line in receipt.lines)
    assert all(line.status == "pending" for line in receipt.lines)


def test_receipt_numbers_follow_the_daily_sequence(db_session, scope_a, cashier_a, customer):
    first = _receipt(scope_a, cashier_a, customer)
    second = _receipt(scope_a, cashier_a, customer)

    assert first.receipt_number.startswith("1-")
    assert second.receipt_number.startswith("2-")
    assert db_session.query(ReceiptNumber).count() == 2


def test_receipt_number_generation_gives_up_after_bounded_attempts(db_session, app, branch_a):
    today = business_today()
    # A number already taken while the day's sequence counter reads empty
    db_session.add(ReceiptNumber(
        branch_id=branch_a.id,
        business_date=today - timedelta(days=1),
        sequence=1,
        receipt_number=receipt_service.format_receipt_number(1, today),
    ))
    db_session.commit()

    with pytest.raises(ConflictError):
        receipt_service.issue_receipt_number(branch_a.id, day=today)
    assert db_session.query(ReceiptNumber).count() == 1


def test_intake_payment_is_split_and_recorded_once(db_session, scope_a, cashier_a, customer):
    receipt = _receipt(scope_a, cashier_a, customer, paid_amount=Decimal("1000"), payment_method="mobile_money")

    paid = [line.paid_amount for line in receipt.lines]
    assert paid == [Decimal("333.33"), Decimal("666.67")]
    assert all(line.payment_status == "advance" for line in receipt.lines)

    entries = db_session.query(Transaction).all()
    assert len(entries) == 1
    assert entries[0].transaction_type == ledger_service.TYPE_PAYMENT
    assert entries[0].amount == Decimal("1000.00")
    assert entries[0].order_id == receipt.lines[0].id

    audit = db_session.query(PaymentAuditLog).filter_by(action="created").all()
    assert len(audit) == 2
    assert {a.transaction_id for a in audit} == {entries[0].id}


def test_intake_rejects_inconsistent_payment(db_session, scope_a, cashier_a, customer):
    with pytest.raises(ValidationError) as exc:
        _receipt(scope_a, cashier_a, customer, paid_amount=Decimal("2000"), payment_status="paid_full")

    assert exc.value.details == ["paid_full_mismatch"]
    assert db_session.query(Order).count() == 0


def test_intake_requires_items_and_known_customer(db_session, scope_a, cashier_a, customer):
    with pytest.raises(ValidationError):
        receipt_service.create_receipt(scope_a, cashier_a, customer_id=customer.id, items=[])
    with pytest.raises(NotFoundError):
        receipt_service.create_receipt(scope_a, cashier_a, customer_id=9999, items=TWO_ITEMS)
    assert db_session.query(ReceiptNumber).count() == 0


def test_unpinned_admin_cannot_take_in_receipts(db_session, admin, customer):
    with pytest.raises(BranchScopeError):
        _receipt(resolve_scope(admin), admin, customer)


# =============================================================================
# LOOKUP
# =============================================================================

def test_lookup_is_case_insensitive(db_session, scope_a, customer, branch_a):
    _order(customer, "AB-7", branch_a.id, 500)

    receipt = receipt_service.get_receipt(scope_a, "ab-7")

    assert receipt.receipt_number == "AB-7"


def test_other_branch_receipt_is_not_found(db_session, scope_b, customer, branch_a):
    _order(customer, "AB-7", branch_a.id, 500)

    with pytest.raises(NotFoundError):
        receipt_service.get_receipt(scope_b, "AB-7")


def test_unpinned_admin_must_pick_a_branch_for_shared_numbers(db_session, admin, scope_a, customer, branch_a, branch_b):
    _order(customer, "5-01-01 (26)", branch_a.id, 500)
    _order(customer, "5-01-01 (26)", branch_b.id, 700)

    with pytest.raises(BranchScopeError):
        receipt_service.get_receipt(resolve_scope(admin), "5-01-01 (26)")

    receipt = receipt_service.get_receipt(scope_a, "5-01-01 (26)")
    assert receipt.total == Decimal("500.00")


# =============================================================================
# RECEIVE PAYMENT
# =============================================================================

def test_paying_the_exact_balance_settles_every_line(db_session, scope_a, cashier_a, customer):
    receipt = _receipt(scope_a, cashier_a, customer)

    result = receipt_service.receive_receipt_payment(
        scope_a, cashier_a, receipt.receipt_number, payment_amount=Decimal("3000"), payment_method="cash",
    )

    assert result["payment_received"] == "3000.00"
    assert result["balance_remaining"] == "0.00"
    lines = db_session.query(Order).order_by(Order.id).all()
    assert [line.paid_amount for line in lines] == [Decimal("1000.00"), Decimal("2000.00")]
    assert all(line.payment_status == "paid_full" for line in lines)
    assert all(line.status == "pending" for line in lines)

    entry = db_session.query(Transaction).one()
    assert entry.transaction_type == ledger_service.TYPE_PAYMENT_RECEIVED
    assert entry.amount == Decimal("3000.00")
    assert db_session.query(PaymentAuditLog).filter_by(action="payment_received").count() == 2


def test_overpayment_is_rejected(db_session, scope_a, cashier_a, customer):
    receipt = _receipt(scope_a, cashier_a, customer)

    with pytest.raises(ConflictError):
        receipt_service.receive_receipt_payment(
            scope_a, cashier_a, receipt.receipt_number, payment_amount=Decimal("3500"),
        )
    assert db_session.query(Transaction).count() == 0


def test_partial_payment_is_rejected(db_session, scope_a, cashier_a, customer):
    receipt = _receipt(scope_a, cashier_a, customer)

    with pytest.raises(ValidationError):
        receipt_service.receive_receipt_payment(
            scope_a, cashier_a, receipt.receipt_number, payment_amount=Decimal("1000"),
        )


def test_settlement_accepts_two_cent_tolerance(db_session, scope_a, cashier_a, customer):
    receipt = _receipt(scope_a, cashier_a, customer)

    result = receipt_service.receive_receipt_payment(
        scope_a, cashier_a, receipt.receipt_number, payment_amount=Decimal("2999.98"), payment_method="card",
    )

    assert result["payment_received"] == "3000.00"
    assert result["receipt"]["payment_status"] == "paid_full"
    entry = db_session.query(Transaction).one()
    assert entry.amount == Decimal("3000.00")
    assert ledger_service.audit_ledger_integrity(scope_a)["warnings"] == []


def test_paying_a_settled_receipt_is_a_conflict(db_session, scope_a, cashier_a, customer):
    receipt = _receipt(scope_a, cashier_a, customer, paid_amount=Decimal("3000"))

    with pytest.raises(ConflictError):
        receipt_service.receive_receipt_payment(
            scope_a, cashier_a, receipt.receipt_number, payment_amount=Decimal("3000"),
        )


# =============================================================================
# COLLECT
# =============================================================================

def test_collect_with_balance_and_no_payment_is_rejected(db_session, scope_a, cashier_a, customer):
    receipt = _receipt(scope_a, cashier_a, customer)

    with pytest.raises(ConflictError):
        receipt_service.collect_receipt(scope_a, cashier_a, receipt.receipt_number)

    lines = db_session.query(Order).all()
    assert all(line.status == "pending" for line in lines)


def test_collect_with_final_payment(db_session, scope_a, cashier_a, customer):
    receipt = _receipt(scope_a, cashier_a, customer, paid_amount=Decimal("1000"))

    result = receipt_service.collect_receipt(
        scope_a, cashier_a, receipt.receipt_number, payment_amount=Decimal("2000"), payment_method="cash",
    )

    assert result["payment_collected"] == "2000.00"
    assert result["balance_remaining"] == "0.00"
    assert result["receipt"]["status"] == "collected"
    lines = db_session.query(Order).order_by(Order.id).all()
    assert [line.paid_amount for line in lines] == [Decimal("1000.00"), Decimal("2000.00")]
    assert all(line.status == "collected" and line.collected_date is not None for line in lines)

    received = db_session.query(Transaction).filter_by(transaction_type="payment_received").one()
    assert received.id == result["transaction_id"]
    assert received.amount == Decimal("2000.00")
    assert db_session.query(PaymentAuditLog).filter_by(action="collected").count() == 2


def test_collect_with_partial_payment_spreads_it_over_lines(db_session, scope_a, cashier_a, customer):
    receipt = _receipt(scope_a, cashier_a, customer)

    result = receipt_service.collect_receipt(
        scope_a, cashier_a, receipt.receipt_number, payment_amount=Decimal("1500"),
    )

    assert result["balance_remaining"] == "1500.00"
    lines = db_session.query(Order).order_by(Order.id).all()
    assert [line.paid_amount for line in lines] == [Decimal("500.00"), Decimal("1000.00")]
    assert all(line.payment_status == "advance" for line in lines)
    assert result["loyalty"] is None


def test_collect_rejects_overpayment_and_negative(db_session, scope_a, cashier_a, customer):
    receipt = _receipt(scope_a, cashier_a, customer)

    with pytest.raises(ConflictError):
        receipt_service.collect_receipt(scope_a, cashier_a, receipt.receipt_number, payment_amount=Decimal("3500"))
    with pytest.raises(ValidationError):
        receipt_service.collect_receipt(scope_a, cashier_a, receipt.receipt_number, payment_amount=Decimal("-5"))


def test_collect_with_explicit_zero_payment_is_invalid(db_session, scope_a, cashier_a, customer):
    receipt = _receipt(scope_a, cashier_a, customer)

    with pytest.raises(ValidationError):
        receipt_service.collect_receipt(scope_a, cashier_a, receipt.receipt_number, payment_amount=Decimal("0"))

    lines = db_session.query(Order).all()
    assert all(line.status == "pending" for line in lines)


def test_collect_twice_is_a_conflict(db_session, scope_a, cashier_a, customer):
    receipt = _receipt(scope_a, cashier_a, customer, paid_amount=Decimal("3000"))
    receipt_service.collect_receipt(scope_a, cashier_a, receipt.receipt_number)

    with pytest.raises(ConflictError):
        receipt_service.collect_receipt(scope_a, cashier_a, receipt.receipt_number)


def test_collect_duplicate_payment_leaves_lines_untouched(db_session, scope_a, cashier_a, customer, branch_a):
    receipt = _receipt(scope_a, cashier_a, customer)
    first_id = receipt.lines[0].id
    ledger_service.append_transaction(
        transaction_type=ledger_service.TYPE_PAYMENT_RECEIVED,
        amount=Decimal("3000"),
        branch_id=branch_a.id,
        payment_method="cash",
        order_id=first_id,
    )
    db_session.commit()

    with pytest.raises(ledger_service.DuplicatePaymentError):
        receipt_service.collect_receipt(scope_a, cashier_a, receipt.receipt_number, payment_amount=Decimal("3000"))

    lines = db_session.query(Order).all()
    assert all(line.status == "pending" and line.paid_amount == 0 for line in lines)
    assert db_session.query(Transaction).count() == 1


def test_collect_awards_loyalty_points(db_session, scope_a, cashier_a, customer):
    receipt = receipt_service.create_receipt(
        scope_a, cashier_a, customer_id=customer.id,
        items=[{"item_name": "Duvet", "quantity": 2, "unit_price": 20000}],
    )

    result = receipt_service.collect_receipt(
        scope_a, cashier_a, receipt.receipt_number, payment_amount=Decimal("40000"),
    )

    assert result["loyalty"]["points_earned"] == 2
    assert result["loyalty"]["current_points"] == 2


def test_loyalty_skipped_when_branch_feature_disabled(db_session, scope_a, cashier_a, customer, branch_a):
    set_branch_feature(branch_a.id, FEATURE_LOYALTY, False)
    receipt = _receipt(scope_a, cashier_a, customer, paid_amount=Decimal("3000"))

    result = receipt_service.collect_receipt(scope_a, cashier_a, receipt.receipt_number)

    assert result["loyalty"] is None
    assert result["receipt"]["status"] == "collected"


# =============================================================================
# STATUS
# =============================================================================

def test_ready_notifies_customer_after_commit(db_session, scope_a, cashier_a, customer, gateway):
    receipt = _receipt(scope_a, cashier_a, customer)

    order = receipt_service.update_order_status(scope_a, cashier_a, receipt.lines[0].id, "ready")

    assert order.status == "ready"
    assert order.ready_date is not None
    assert len(gateway.sent) == 1
    recipient, message = gateway.sent[0]
    assert recipient == customer.phone
    assert receipt.receipt_number in message
    assert "Balance due: 3000.00" in message


def test_failed_notification_does_not_undo_status(db_session, scope_a, cashier_a, customer, gateway):
    gateway.fail = True
    receipt = _receipt(scope_a, cashier_a, customer)

    order = receipt_service.update_order_status(scope_a, cashier_a, receipt.lines[0].id, "ready")

    assert order.status == "ready"
    assert db_session.get(Order, order.id).status == "ready"


def test_status_cannot_be_set_to_collected(db_session, scope_a, cashier_a, customer):
    receipt = _receipt(scope_a, cashier_a, customer)

    with pytest.raises(ValidationError):
        receipt_service.update_order_status(scope_a, cashier_a, receipt.lines[0].id, "collected")


def test_status_of_other_branch_order_is_refused(db_session, scope_b, cashier_b, customer, branch_a):
    order = _order(customer, "X-1", branch_a.id, 500)

    with pytest.raises(BranchScopeError):
        receipt_service.update_order_status(scope_b, cashier_b, order.id, "processing")


def test_legacy_order_is_adopted_by_caller_branch(db_session, scope_a, cashier_a, customer, branch_a):
    order = _order(customer, "OLD-1", None, 500)

    updated = receipt_service.update_order_status(scope_a, cashier_a, order.id, "processing")

    assert updated.branch_id == branch_a.id
    assert updated.status == "processing"


def test_receipt_of_order_line(db_session, scope_a, cashier_a, customer):
    receipt = _receipt(scope_a, cashier_a, customer)

    found = receipt_service.get_receipt_for_order(scope_a, receipt.lines[1].id)

    assert found.receipt_number == receipt.receipt_number
    assert len(found.lines) == 2
    with pytest.raises(NotFoundError):
        receipt_service.get_receipt_for_order(BranchScope(), receipt.lines[1].id)


def test_unpinned_admin_reads_and_settles_by_order_id(db_session, admin, scope_a, scope_b, cashier_a, cashier_b, customer):
    in_a = _receipt(scope_a, cashier_a, customer)
    in_b = receipt_service.create_receipt(
        scope_b, cashier_b, customer_id=customer.id,
        items=[{"item_name": "Duvet", "service_type": "wash", "quantity": 1, "unit_price": 4000}],
    )
    assert in_a.receipt_number == in_b.receipt_number
    admin_scope = resolve_scope(admin)

    found = receipt_service.get_receipt_for_order(admin_scope, in_a.lines[1].id)
    assert found.branch_id == in_a.branch_id
    assert found.total == Decimal("3000.00")

    result = receipt_service.receive_order_payment(
        admin_scope, admin, in_b.lines[0].id, payment_amount=Decimal("4000"), payment_method="cash",
    )

    assert result["receipt"]["branch_id"] == in_b.branch_id
    assert result["receipt"]["payment_status"] == "paid_full"
    entry = db_session.query(Transaction).filter_by(transaction_type=ledger_service.TYPE_PAYMENT_RECEIVED).one()
    assert entry.branch_id == in_b.branch_id
    a_lines = db_session.query(Order).filter_by(branch_id=in_a.branch_id).all()
    assert all(line.payment_status == "not_paid" for line in a_lines)
