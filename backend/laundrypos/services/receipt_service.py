# Overview: Service-layer operations for receipts; intake, status changes, collection and receipt-level payments.

"""
Receipt Service

WHY: A customer hands in several items and gets one receipt. Each item is
an order line; lines sharing a receipt number (within a branch) form the
Receipt aggregate. Payment and collection only ever act on the whole
receipt, so no single item can be collected or paid on its own.

DESIGN PRINCIPLES:
- Receipt is an aggregate root built from locked lines; its methods
  validate and apply a change to every line at once
- One payment event = one ledger entry (attributed to the first line)
  + one audit entry per line, committed in the same transaction as the
  line updates
- Money is rounded to cents after every aggregation step
- Side effects (loyalty, SMS) run after commit and never fail the call
- Concurrent calls on one receipt are serialized by row locks and
  version_id_col; the loser re-reads and re-validates
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import Customer, Order, ReceiptNumber
from ..money import (
    D, TOLERANCE, RECEIPT_MATCH_TOLERANCE, ZERO,
    allocate_proportionally, round_money, sum_money, to_string_money,
)
from ..time_utils import utcnow, business_today
from ..validation import ValidationError, ConflictError, NotFoundError
from . import audit_service, ledger_service, loyalty_service, notification_service
from .branch_scope_service import (
    Actor, BranchScope, BranchScopeError, FEATURE_LOYALTY,
    branch_has_feature, ensure_row_in_scope,
)
from .concurrency import lock_for_update, run_with_retry
from .payment_service import (
    PAYMENT_STATUS_ADVANCE, PAYMENT_STATUS_PAID_FULL,
    derive_payment_status, is_valid_method, validate_payment, VALID_PAYMENT_METHODS,
)


# =============================================================================
# ORDER STATUS (CONSTANTS)
# =============================================================================

STATUS_PENDING = "pending"
STATUS_PROCESSING = "processing"
STATUS_READY = "ready"
STATUS_COLLECTED = "collected"

VALID_ORDER_STATUSES = [STATUS_PENDING, STATUS_PROCESSING, STATUS_READY, STATUS_COLLECTED]

# collected is only reachable through collect_receipt
SETTABLE_ORDER_STATUSES = [STATUS_PENDING, STATUS_PROCESSING, STATUS_READY]

DEFAULT_RECEIPT_NUMBER_ATTEMPTS = 5


# =============================================================================
# RECEIPT AGGREGATE
# =============================================================================

@dataclass
class PaymentOutcome:
    """What a collect / receive-payment call changed."""
    payment_amount: Decimal
    payment_method: str
    payment_status: str
    before: dict = field(default_factory=dict)  # order id -> audit snapshot


class Receipt:
    """
    Lines sharing one receipt number within one branch.

    Totals are recomputed from the lines on every access so they always
    reflect the current (locked) state.
    """

    def __init__(self, receipt_number: str, branch_id: int | None, lines: list[Order]):
        if not lines:
            raise NotFoundError("Receipt not found")
        self.receipt_number = receipt_number
        self.branch_id = branch_id
        self.lines = sorted(lines, key=lambda line: line.id)

    @property
    def first_line(self) -> Order:
        return self.lines[0]

    @property
    def customer_id(self) -> int:
        return self.first_line.customer_id

    @property
    def total(self) -> Decimal:
        return sum_money(line.total_amount for line in self.lines)

    @property
    def paid(self) -> Decimal:
        return sum_money(line.paid_amount for line in self.lines)

    @property
    def balance_due(self) -> Decimal:
        return round_money(self.total - self.paid)

    @property
    def is_collected(self) -> bool:
        return any(line.status == STATUS_COLLECTED for line in self.lines)

    def _snapshots(self) -> dict:
        return {line.id: audit_service.snapshot(line) for line in self.lines}

    def collect(self, payment_amount=None, payment_method: str | None = None, *, now=None) -> PaymentOutcome:
        """
        Mark every line collected, optionally taking a final payment.

        Raises:
            ConflictError: Already collected, outstanding balance without a
                payment, or payment above the balance due
            ValidationError: Supplied payment not above zero, or unknown method
        """
        if self.is_collected:
            raise ConflictError("Receipt already collected")

        method = payment_method or self.first_line.payment_method
        if not is_valid_method(method):
            raise ValidationError(f"Invalid payment method: {method}. Must be one of {VALID_PAYMENT_METHODS}")

        balance_due = self.balance_due
        amount = round_money(payment_amount) if payment_amount is not None else ZERO
        if payment_amount is not None and amount <= 0:
            raise ValidationError("Payment amount must be greater than 0")

        if amount == 0:
            if balance_due > 0:
                raise ConflictError(
                    f"Cannot collect with a balance due of {balance_due}. Receive the payment first"
                )
        elif amount > balance_due + TOLERANCE:
            raise ConflictError(f"Payment cannot exceed the balance due of {balance_due}")

        new_paid = round_money(self.paid + amount)
        status = PAYMENT_STATUS_PAID_FULL if new_paid >= self.total - TOLERANCE else PAYMENT_STATUS_ADVANCE

        outcome = PaymentOutcome(payment_amount=amount, payment_method=method, payment_status=status, before=self._snapshots())

        if status == PAYMENT_STATUS_PAID_FULL:
            increments = [round_money(D(line.total_amount) - D(line.paid_amount)) for line in self.lines]
        else:
            balances = [max(ZERO, round_money(D(line.total_amount) - D(line.paid_amount))) for line in self.lines]
            increments = allocate_proportionally(balances, amount)

        now = now or utcnow()
        for line, increment in zip(self.lines, increments):
            if status == PAYMENT_STATUS_PAID_FULL:
                line.paid_amount = round_money(line.total_amount)
            else:
                line.paid_amount = round_money(D(line.paid_amount) + increment)
            line.payment_status = status
            line.payment_method = method
            line.status = STATUS_COLLECTED
            line.collected_date = now
        return outcome

    def receive_payment(self, payment_amount, payment_method: str) -> PaymentOutcome:
        """
        Settle the full balance without collecting.

        Only exact settlement (within RECEIPT_MATCH_TOLERANCE) is accepted;
        every line is then paid at its own total. The ledger records the
        balance due, not the submitted figure.

        Raises:
            ConflictError: Already fully paid or payment above the balance due
            ValidationError: Partial payment, non-positive amount or unknown method
        """
        if not is_valid_method(payment_method):
            raise ValidationError(f"Invalid payment method: {payment_method}. Must be one of {VALID_PAYMENT_METHODS}")
        amount = round_money(payment_amount)
        if amount <= 0:
            raise ValidationError("Payment amount must be greater than 0")

        balance_due = self.balance_due
        if balance_due <= TOLERANCE:
            raise ConflictError("Receipt is already fully paid")
        if amount > balance_due + RECEIPT_MATCH_TOLERANCE:
            raise ConflictError(f"Payment cannot exceed the balance due of {balance_due}")
        if amount < balance_due - RECEIPT_MATCH_TOLERANCE:
            raise ValidationError(
                f"Payment must equal the balance due of {balance_due}. Partial payments are not allowed"
            )

        outcome = PaymentOutcome(
            payment_amount=balance_due,
            payment_method=payment_method,
            payment_status=PAYMENT_STATUS_PAID_FULL,
            before=self._snapshots(),
        )
        for line in self.lines:
            line.paid_amount = round_money(line.total_amount)
            line.payment_status = PAYMENT_STATUS_PAID_FULL
            line.payment_method = payment_method
        return outcome

    def to_dict(self) -> dict:
        first = self.first_line
        return {
            "receipt_number": self.receipt_number,
            "branch_id": self.branch_id,
            "customer_id": self.customer_id,
            "item_count": len(self.lines),
            "receipt_total": to_string_money(self.total),
            "receipt_paid": to_string_money(self.paid),
            "balance_due": to_string_money(self.balance_due),
            "payment_status": first.payment_status,
            "payment_method": first.payment_method,
            "status": first.status,
            "lines": [line.to_dict() for line in self.lines],
        }


# =============================================================================
# LOADING
# =============================================================================

def _load_receipt(scope: BranchScope, receipt_number: str, *, lock: bool) -> Receipt:
    """
    Lines of one receipt inside the scope (case-insensitive number match).

    Raises:
        NotFoundError: No line in scope
        BranchScopeError: Unpinned admin and the number exists in several branches
    """
    number = (receipt_number or "").strip()
    if not number:
        raise ValidationError("receipt_number is required")

    query = db.session.query(Order).filter(func.upper(Order.receipt_number) == number.upper())
    query = scope.apply(query, Order.branch_id).order_by(Order.id.asc())
    if lock:
        query = lock_for_update(query)
    lines = query.all()
    if not lines:
        raise NotFoundError("Receipt not found")

    branch_ids = {line.branch_id for line in lines}
    if len(branch_ids) > 1:
        raise BranchScopeError("Receipt number exists in several branches; select a branch first")

    return Receipt(lines[0].receipt_number, lines[0].branch_id, lines)


def get_receipt(scope: BranchScope, receipt_number: str) -> Receipt:
    return _load_receipt(scope, receipt_number, lock=False)


def _order_receipt_ref(scope: BranchScope, order_id: int) -> tuple[BranchScope, str]:
    """
    Branch and receipt number of one order line inside the scope.

    The returned scope is pinned to the order's own branch, so an unpinned
    admin is never asked to choose between branches sharing the number.
    """
    order = scope.apply(db.session.query(Order).filter(Order.id == order_id), Order.branch_id).first()
    if order is None:
        raise NotFoundError("Order not found")
    if order.branch_id is None:
        return scope, order.receipt_number
    return BranchScope(branch_id=order.branch_id), order.receipt_number


def get_receipt_for_order(scope: BranchScope, order_id: int) -> Receipt:
    order_scope, receipt_number = _order_receipt_ref(scope, order_id)
    return _load_receipt(order_scope, receipt_number, lock=False)


# =============================================================================
# RECEIPT NUMBERS
# =============================================================================

def format_receipt_number(sequence: int, day: date) -> str:
    """{sequence}-{DD}-{MM} ({YY}), e.g. 1-01-01 (26)."""
    return f"{sequence}-{day.day:02d}-{day.month:02d} ({day.year % 100:02d})"


def issue_receipt_number(branch_id: int, *, day: date | None = None) -> str:
    """
    Reserve the next receipt number of the day for a branch.

    Must run before any other change in the session: on a uniqueness
    collision the session is rolled back and a new number generated, up
    to RECEIPT_NUMBER_MAX_ATTEMPTS times.

    Raises:
        ConflictError: Every attempt collided
    """
    day = day or business_today()
    attempts = current_app.config.get("RECEIPT_NUMBER_MAX_ATTEMPTS", DEFAULT_RECEIPT_NUMBER_ATTEMPTS)

    for _ in range(attempts):
        max_seq = (
            db.session.query(func.max(ReceiptNumber.sequence))
            .filter(ReceiptNumber.branch_id == branch_id, ReceiptNumber.business_date == day)
            .scalar()
        )
        sequence = (max_seq or 0) + 1
        number = format_receipt_number(sequence, day)
        db.session.add(ReceiptNumber(branch_id=branch_id, business_date=day, sequence=sequence, receipt_number=number))
        try:
            db.session.flush()
        except IntegrityError:
            db.session.rollback()
            current_app.logger.info("Receipt number %s collided for branch %s, regenerating", number, branch_id)
            continue
        return number

    raise ConflictError(f"Could not generate a unique receipt number after {attempts} attempts")


# =============================================================================
# INTAKE
# =============================================================================

def _parse_items(items) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise ValidationError("At least one item is required")
    parsed = []
    for idx, item in enumerate(items, start=1):
        if not isinstance(item, dict):
            raise ValidationError(f"Item {idx} must be an object")
        name = str(item.get("item_name") or "").strip()
        if not name:
            raise ValidationError(f"Item {idx}: item_name is required")
        quantity = item.get("quantity", 1)
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            raise ValidationError(f"Item {idx}: quantity must be a positive integer")
        unit_price = item.get("unit_price")
        if unit_price is None:
            raise ValidationError(f"Item {idx}: unit_price is required")
        unit_price = round_money(unit_price)
        if unit_price < 0:
            raise ValidationError(f"Item {idx}: unit_price cannot be negative")
        parsed.append({
            "item_name": name,
            "service_type": item.get("service_type"),
            "quantity": quantity,
            "unit_price": unit_price,
            "total_amount": round_money(unit_price * quantity),
        })
    return parsed


def create_receipt(
    scope: BranchScope,
    actor: Actor,
    *,
    customer_id: int,
    items: list,
    payment_method: str | None = None,
    paid_amount=None,
    payment_status: str | None = None,
    due_date: date | None = None,
    notes: str | None = None,
) -> Receipt:
    """
    Take in a new receipt: one order line per item.

    Any amount paid at intake is spread over the lines in proportion to
    their totals and recorded as a single `payment` ledger entry.

    Raises:
        BranchScopeError: No concrete branch
        ValidationError: Bad items or payment shape
        NotFoundError: Unknown customer
    """
    branch_id = scope.require_branch()
    parsed = _parse_items(items)
    total = sum_money(p["total_amount"] for p in parsed)
    paid = round_money(paid_amount) if paid_amount is not None else ZERO
    method = payment_method or "cash"
    status = payment_status or derive_payment_status(paid, total)

    result = validate_payment(total, paid, status, method)
    if not result.valid:
        raise ValidationError(result.error, details=[result.rule])

    def _op():
        try:
            receipt_number = issue_receipt_number(branch_id)

            customer = db.session.query(Customer).filter_by(id=customer_id).first()
            if customer is None:
                raise NotFoundError(f"Customer {customer_id} not found")

            now = utcnow()
            shares = allocate_proportionally([p["total_amount"] for p in parsed], paid)
            lines = []
            for p, share in zip(parsed, shares):
                line = Order(
                    receipt_number=receipt_number,
                    customer_id=customer.id,
                    branch_id=branch_id,
                    item_name=p["item_name"],
                    service_type=p["service_type"],
                    quantity=p["quantity"],
                    unit_price=p["unit_price"],
                    total_amount=p["total_amount"],
                    paid_amount=share,
                    payment_status=derive_payment_status(share, p["total_amount"]) if paid > 0 else status,
                    payment_method=method,
                    status=STATUS_PENDING,
                    order_date=now,
                    due_date=due_date,
                    created_by=actor.label,
                    notes=notes,
                )
                db.session.add(line)
                lines.append(line)
            db.session.flush()

            transaction_id = None
            if paid > 0:
                entry = ledger_service.append_transaction(
                    transaction_type=ledger_service.TYPE_PAYMENT,
                    amount=paid,
                    branch_id=branch_id,
                    payment_method=method,
                    order_id=lines[0].id,
                    description=f"Payment at intake for receipt {receipt_number}",
                    created_by=actor.label,
                    occurred_at=now,
                )
                transaction_id = entry.id

            for line in lines:
                audit_service.log_payment_change(
                    line,
                    action=audit_service.ACTION_CREATED,
                    before=None,
                    changed_by=actor.label,
                    notes=f"Receipt {receipt_number} created ({len(lines)} items)",
                    transaction_id=transaction_id,
                )

            db.session.commit()
            return Receipt(receipt_number, branch_id, lines)
        except Exception:
            db.session.rollback()
            raise

    return run_with_retry(_op)


# =============================================================================
# STATUS
# =============================================================================

def update_order_status(scope: BranchScope, actor: Actor, order_id: int, status: str) -> Order:
    """
    Move one line through pending -> processing -> ready.

    A legacy line with no branch is adopted into the caller's branch.
    Moving to ready stamps ready_date and notifies the customer after commit.

    Raises:
        ValidationError: Unknown status, or collected (use collect)
        NotFoundError: No such order
        BranchScopeError: Order belongs to another branch
    """
    if status not in VALID_ORDER_STATUSES:
        raise ValidationError(f"Invalid status: {status}. Must be one of {VALID_ORDER_STATUSES}")
    if status not in SETTABLE_ORDER_STATUSES:
        raise ValidationError("Use receipt collection to mark orders as collected")

    def _op():
        try:
            order = lock_for_update(db.session.query(Order).filter(Order.id == order_id)).first()
            if order is None:
                raise NotFoundError("Order not found")

            if order.branch_id is None:
                if scope.branch_id is not None:
                    order.branch_id = scope.branch_id
                    current_app.logger.info("Adopted legacy order %s into branch %s", order.id, scope.branch_id)
                elif not scope.all_branches:
                    raise BranchScopeError("No branch assigned to this user")
            else:
                ensure_row_in_scope(scope, order.branch_id, what="Order")

            if order.status == STATUS_COLLECTED:
                raise ConflictError("Order already collected")

            became_ready = status == STATUS_READY and order.status != STATUS_READY
            order.status = status
            if became_ready:
                order.ready_date = utcnow()
            db.session.commit()
            return order, became_ready
        except Exception:
            db.session.rollback()
            raise

    order, became_ready = run_with_retry(_op)

    if became_ready:
        _notify_ready(order)
    return order


def _notify_ready(order: Order) -> bool:
    try:
        customer = db.session.query(Customer).filter_by(id=order.customer_id).first()
        if customer is None:
            return False
        receipt = get_receipt(BranchScope(branch_id=order.branch_id), order.receipt_number)
        balance = receipt.balance_due
        message = notification_service.order_ready_message(
            customer.name, order.receipt_number, to_string_money(balance) if balance > 0 else None,
        )
        return notification_service.dispatch(
            notification_service.KIND_ORDER_READY, customer.phone, message, branch_id=order.branch_id,
        )
    except Exception:
        current_app.logger.exception("Failed to send ready notification for order %s", order.id)
        return False


# =============================================================================
# COLLECT / RECEIVE PAYMENT
# =============================================================================

def _record_payment_event(receipt: Receipt, outcome: PaymentOutcome, actor: Actor, *, action: str, notes: str | None) -> int | None:
    """Ledger entry (if money moved) + one audit entry per line. Flushed, not committed."""
    transaction_id = None
    if outcome.payment_amount > 0:
        entry = ledger_service.record_payment_received(
            receipt.first_line, outcome.payment_amount, outcome.payment_method, actor.label,
        )
        transaction_id = entry.id

    default_note = f"Receipt {receipt.receipt_number} ({len(receipt.lines)} items)"
    if outcome.payment_amount > 0:
        default_note += f": payment {outcome.payment_amount} by {outcome.payment_method}"
    for line in receipt.lines:
        audit_service.log_payment_change(
            line,
            action=action,
            before=outcome.before.get(line.id),
            changed_by=actor.label,
            notes=notes or default_note,
            transaction_id=transaction_id,
        )
    return transaction_id


def collect_receipt(
    scope: BranchScope,
    actor: Actor,
    receipt_number: str,
    *,
    payment_amount=None,
    payment_method: str | None = None,
    notes: str | None = None,
) -> dict:
    """
    Collect every item of a receipt, optionally settling the balance.

    Returns:
        dict with receipt, payment_collected, transaction_id and loyalty
    """
    def _op():
        try:
            receipt = _load_receipt(scope, receipt_number, lock=True)
            # Duplicate guard runs before any line is touched
            if payment_amount is not None and round_money(payment_amount) > 0:
                if ledger_service.is_duplicate_payment(receipt.first_line.id, payment_amount):
                    raise ledger_service.DuplicatePaymentError(
                        "Duplicate payment detected. This payment was already recorded"
                    )
            outcome = receipt.collect(payment_amount, payment_method)
            transaction_id = _record_payment_event(
                receipt, outcome, actor, action=audit_service.ACTION_COLLECTED, notes=notes,
            )
            db.session.commit()
            return receipt, outcome, transaction_id
        except Exception:
            db.session.rollback()
            raise

    receipt, outcome, transaction_id = run_with_retry(_op)

    loyalty = None
    if outcome.payment_status == PAYMENT_STATUS_PAID_FULL and receipt.total > 0:
        loyalty = _award_loyalty(receipt, actor)

    return {
        "receipt": receipt.to_dict(),
        "payment_collected": to_string_money(outcome.payment_amount),
        "balance_remaining": to_string_money(receipt.balance_due),
        "transaction_id": transaction_id,
        "loyalty": loyalty,
    }


def receive_receipt_payment(
    scope: BranchScope,
    actor: Actor,
    receipt_number: str,
    *,
    payment_amount,
    payment_method: str | None = None,
    notes: str | None = None,
) -> dict:
    """
    Settle a receipt's full balance without collecting it.

    Returns:
        dict with receipt, payment_received and transaction_id
    """
    if payment_amount is None:
        raise ValidationError("payment_amount is required")

    def _op():
        try:
            receipt = _load_receipt(scope, receipt_number, lock=True)
            outcome = receipt.receive_payment(payment_amount, payment_method or "cash")
            transaction_id = _record_payment_event(
                receipt, outcome, actor, action=audit_service.ACTION_PAYMENT_RECEIVED, notes=notes,
            )
            db.session.commit()
            return receipt, outcome, transaction_id
        except Exception:
            db.session.rollback()
            raise

    receipt, outcome, transaction_id = run_with_retry(_op)
    return {
        "receipt": receipt.to_dict(),
        "payment_received": to_string_money(outcome.payment_amount),
        "balance_remaining": to_string_money(receipt.balance_due),
        "transaction_id": transaction_id,
    }


def receive_order_payment(scope: BranchScope, actor: Actor, order_id: int, **kwargs) -> dict:
    """receive_receipt_payment on the receipt an order line belongs to, inside that line's branch."""
    order_scope, receipt_number = _order_receipt_ref(scope, order_id)
    return receive_receipt_payment(order_scope, actor, receipt_number, **kwargs)


def _award_loyalty(receipt: Receipt, actor: Actor) -> dict | None:
    if not branch_has_feature(receipt.branch_id, FEATURE_LOYALTY):
        return None
    try:
        return loyalty_service.award_points_on_collection(
            receipt.customer_id, receipt.first_line.id, receipt.total, created_by=actor.label,
        )
    except Exception:
        db.session.rollback()
        current_app.logger.warning(
            "Failed to award loyalty points for receipt %s", receipt.receipt_number, exc_info=True,
        )
        return None
