from datetime import timedelta
from decimal import Decimal

import pytest

from laundrypos.models import DailyCashSummary, Expense, NotificationLog
from laundrypos.services import cash_service, expense_service, ledger_service, receipt_service
from laundrypos.services.branch_scope_service import BranchScopeError, resolve_scope
from laundrypos.time_utils import business_today, utcnow
from laundrypos.validation import ConflictError, ValidationError


@pytest.fixture
def today():
    return business_today()


def _saved_day(db_session, branch, day, closing):
    row = DailyCashSummary(date=day, branch_id=branch.id, closing_balance=Decimal(closing), cash_in_hand=Decimal(closing))
    db_session.add(row)
    db_session.commit()
    return row


def _received(db_session, branch, amount, method):
    ledger_service.append_transaction(
        transaction_type=ledger_service.TYPE_PAYMENT_RECEIVED,
        amount=Decimal(amount),
        branch_id=branch.id,
        payment_method=method,
    )
    db_session.commit()


# =============================================================================
# CALCULATION
# =============================================================================

def test_opening_balance_chains_from_previous_saved_day(db_session, branch_a, today):
    assert cash_service.compute_daily_figures(branch_a.id, today)["opening_balance"] == Decimal("0.00")

    _saved_day(db_session, branch_a, today - timedelta(days=1), "8000")

    assert cash_service.compute_daily_figures(branch_a.id, today)["opening_balance"] == Decimal("8000.00")


def test_previous_day_of_other_branch_is_ignored(db_session, branch_a, branch_b, today):
    _saved_day(db_session, branch_b, today - timedelta(days=1), "8000")

    assert cash_service.compute_daily_figures(branch_a.id, today)["opening_balance"] == Decimal("0.00")


def test_cash_in_hand_formula(db_session, branch_a, scope_a, cashier_a, customer, today):
    _saved_day(db_session, branch_a, today - timedelta(days=1), "10000")
    receipt_service.create_receipt(
        scope_a, cashier_a, customer_id=customer.id,
        items=[{"item_name": "Carpet", "unit_price": 5000}],
        paid_amount=Decimal("5000"), payment_method="cash",
    )
    _received(db_session, branch_a, "2000", "cash")
    _received(db_session, branch_a, "700", "card")
    _received(db_session, branch_a, "1200", "mobile_money")
    expense_service.record_expense(scope_a, cashier_a, amount=Decimal("1000"), category="detergent")
    expense_service.record_expense(scope_a, cashier_a, amount=Decimal("400"), category="rent", payment_source="bank")
    expense_service.record_bank_deposit(scope_a, cashier_a, amount=Decimal("3000"), reference="DEP-1")

    figures = cash_service.compute_daily_figures(branch_a.id, today)

    assert figures["opening_balance"] == Decimal("10000.00")
    assert figures["cash_sales"] == Decimal("5000.00")
    assert figures["book_sales"] == Decimal("2000.00")
    assert figures["card_sales"] == Decimal("700.00")
    assert figures["mobile_money_sales"] == Decimal("1200.00")
    assert figures["expenses_from_cash"] == Decimal("1000.00")
    assert figures["expenses_from_bank"] == Decimal("400.00")
    assert figures["bank_deposits"] == Decimal("3000.00")
    assert figures["cash_in_hand"] == Decimal("13000.00")
    assert figures["closing_balance"] == figures["cash_in_hand"]


def test_advance_and_non_cash_intake_are_not_cash_sales(db_session, branch_a, scope_a, cashier_a, customer, today):
    receipt_service.create_receipt(
        scope_a, cashier_a, customer_id=customer.id,
        items=[{"item_name": "Jacket", "unit_price": 5000}], paid_amount=Decimal("2000"),
    )
    receipt_service.create_receipt(
        scope_a, cashier_a, customer_id=customer.id,
        items=[{"item_name": "Blanket", "unit_price": 3000}], paid_amount=Decimal("3000"), payment_method="card",
    )

    assert cash_service.compute_daily_figures(branch_a.id, today)["cash_sales"] == Decimal("0.00")


def test_legacy_expenses_count_for_every_branch(db_session, branch_a, branch_b, today):
    db_session.add(Expense(branch_id=None, amount=Decimal("250"), category="water", payment_source="cash", expense_date=utcnow()))
    db_session.add(Expense(branch_id=branch_b.id, amount=Decimal("900"), category="water", payment_source="cash", expense_date=utcnow()))
    db_session.commit()

    assert cash_service.compute_daily_figures(branch_a.id, today)["expenses_from_cash"] == Decimal("250.00")
    assert cash_service.compute_daily_figures(branch_b.id, today)["expenses_from_cash"] == Decimal("1150.00")


# =============================================================================
# READS
# =============================================================================

def test_reads_never_persist(db_session, scope_a, today):
    summary = cash_service.get_daily_summary(scope_a, today)
    live = cash_service.get_today_summary(scope_a)

    assert summary["state"] == cash_service.STATE_COMPUTED
    assert live["state"] == cash_service.STATE_COMPUTED
    assert summary["id"] is None
    assert db_session.query(DailyCashSummary).count() == 0


def test_unpinned_admin_must_pick_a_branch(db_session, admin, today):
    with pytest.raises(BranchScopeError):
        cash_service.get_daily_summary(resolve_scope(admin), today)


def test_list_summaries_range(db_session, branch_a, branch_b, scope_a, admin, today):
    _saved_day(db_session, branch_a, today - timedelta(days=2), "100")
    _saved_day(db_session, branch_a, today - timedelta(days=1), "200")
    _saved_day(db_session, branch_b, today - timedelta(days=1), "300")

    rows = cash_service.list_summaries(scope_a, today - timedelta(days=7), today)
    assert [r.closing_balance for r in rows] == [Decimal("100.00"), Decimal("200.00")]
    assert len(cash_service.list_summaries(resolve_scope(admin), today - timedelta(days=1), today)) == 2

    with pytest.raises(ValidationError):
        cash_service.list_summaries(scope_a, today, today - timedelta(days=1))


# =============================================================================
# SAVE / RECONCILE
# =============================================================================

def test_save_recomputes_and_keeps_manual_fields(db_session, branch_a, scope_a, cashier_a, today):
    _received(db_session, branch_a, "1200", "mobile_money")

    row = cash_service.save_daily_summary(
        scope_a, cashier_a, today, {"bank_payments": Decimal("500"), "notes": "Till short by 50"},
    )

    assert row.mobile_money_sales == Decimal("1200.00")
    assert row.mpesa_received == Decimal("1200.00")
    assert row.bank_payments == Decimal("500.00")
    assert row.notes == "Till short by 50"
    assert row.created_by == "Cashier A"

    _received(db_session, branch_a, "300", "cash")
    again = cash_service.save_daily_summary(scope_a, cashier_a, today, {"mpesa_paid": Decimal("80")})

    assert again.id == row.id
    assert again.book_sales == Decimal("300.00")
    assert again.bank_payments == Decimal("500.00")
    assert again.mpesa_paid == Decimal("80.00")
    assert db_session.query(DailyCashSummary).count() == 1

    live = cash_service.get_today_summary(scope_a)
    assert live["state"] == cash_service.STATE_SAVED
    assert live["bank_payments"] == "500.00"


def test_reconcile_locks_the_day_and_sends_report(db_session, scope_a, cashier_a, today, gateway):
    result = cash_service.reconcile_day(scope_a, cashier_a, today, notes="Counted twice")

    summary = result["summary"]
    assert result["report_sent"] is True
    assert summary["state"] == cash_service.STATE_RECONCILED
    assert summary["is_reconciled"] is True
    assert summary["reconciled_by"] == "Cashier A"
    assert summary["notes"] == "Counted twice"
    assert len(gateway.sent) == 1
    assert gateway.sent[0][0] == "+255700000999"
    assert "Closing balance: 0.00" in gateway.sent[0][1]

    with pytest.raises(ConflictError):
        cash_service.save_daily_summary(scope_a, cashier_a, today, {"bank_payments": Decimal("1")})
    with pytest.raises(ConflictError):
        cash_service.reconcile_day(scope_a, cashier_a, today)

    assert cash_service.get_today_summary(scope_a)["state"] == cash_service.STATE_RECONCILED


def test_reconciled_day_keeps_its_figures(db_session, branch_a, scope_a, cashier_a, today, gateway):
    cash_service.save_daily_summary(scope_a, cashier_a, today)
    cash_service.reconcile_day(scope_a, cashier_a, today)
    _received(db_session, branch_a, "999", "cash")

    summary = cash_service.get_daily_summary(scope_a, today)

    assert summary["book_sales"] == "0.00"
    assert summary["state"] == cash_service.STATE_RECONCILED


def test_failed_report_does_not_undo_reconciliation(db_session, scope_a, cashier_a, today, gateway):
    gateway.fail = True

    result = cash_service.reconcile_day(scope_a, cashier_a, today)

    assert result["report_sent"] is False
    row = db_session.query(DailyCashSummary).one()
    assert row.is_reconciled is True
    log = db_session.query(NotificationLog).one()
    assert log.status == "failed"
    assert "SMS provider unavailable" in log.error_message


def test_next_day_opens_from_reconciled_close(db_session, branch_a, scope_a, cashier_a, today, gateway):
    yesterday = today - timedelta(days=1)
    _saved_day(db_session, branch_a, yesterday - timedelta(days=1), "8000")
    cash_service.reconcile_day(scope_a, cashier_a, yesterday)

    assert cash_service.compute_daily_figures(branch_a.id, today)["opening_balance"] == Decimal("8000.00")
