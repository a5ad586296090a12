# Overview: Service-layer payment rules; payment constants and the stateless payment validator.

"""
Payment Validation

WHY: Every order line carries paid_amount, payment_status and
payment_method, and the three must agree with each other and with the
line total. The validator is a pure function so it can run before any
database work.

DESIGN PRINCIPLES:
- Stateless: (total, paid, status, method) -> valid | invalid + reason
- One failing rule is reported, identified by a stable rule code
- 0.01 tolerance for rounding on the paid_full comparison
- Used at order intake; receipt-level flows apply stricter rules
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import InvalidOperation

from ..money import TOLERANCE, round_money


# =============================================================================
# PAYMENT STATUS / METHOD (CONSTANTS)
# =============================================================================

PAYMENT_STATUS_NOT_PAID = "not_paid"
PAYMENT_STATUS_ADVANCE = "advance"
PAYMENT_STATUS_PAID_FULL = "paid_full"

VALID_PAYMENT_STATUSES = [
    PAYMENT_STATUS_NOT_PAID,
    PAYMENT_STATUS_ADVANCE,
    PAYMENT_STATUS_PAID_FULL,
]

METHOD_CASH = "cash"
METHOD_CARD = "card"
METHOD_MOBILE_MONEY = "mobile_money"
METHOD_BOOK = "book"

VALID_PAYMENT_METHODS = [
    METHOD_CASH,
    METHOD_CARD,
    METHOD_MOBILE_MONEY,
    METHOD_BOOK,
]


# =============================================================================
# VALIDATION RESULT
# =============================================================================

RULE_NEGATIVE_AMOUNT = "negative_amount"
RULE_PAID_FULL_MISMATCH = "paid_full_mismatch"
RULE_ADVANCE_NOT_POSITIVE = "advance_not_positive"
RULE_ADVANCE_NOT_BELOW_TOTAL = "advance_not_below_total"
RULE_NOT_PAID_WITH_AMOUNT = "not_paid_with_amount"
RULE_INVALID_STATUS = "invalid_status"
RULE_INVALID_METHOD = "invalid_method"
RULE_INVALID_AMOUNT = "invalid_amount"


@dataclass(frozen=True)
class PaymentValidation:
    valid: bool
    error: str | None = None
    rule: str | None = None

    @classmethod
    def ok(cls) -> "PaymentValidation":
        return cls(valid=True)

    @classmethod
    def fail(cls, rule: str, error: str) -> "PaymentValidation":
        return cls(valid=False, error=error, rule=rule)


def validate_payment(total_amount, paid_amount, payment_status: str | None, payment_method: str | None) -> PaymentValidation:
    """
    Check a proposed payment shape against one order total.

    Args:
        total_amount: Order (or receipt) total
        paid_amount: Proposed cumulative paid amount (None means 0)
        payment_status: not_paid, advance, paid_full (None means not_paid)
        payment_method: cash, card, mobile_money, book (None means cash)

    Returns:
        PaymentValidation with valid flag, message and rule code
    """
    status = payment_status or PAYMENT_STATUS_NOT_PAID
    method = payment_method or METHOD_CASH

    try:
        total = round_money(total_amount)
        paid = round_money(paid_amount if paid_amount is not None else 0)
    except (InvalidOperation, ValueError, TypeError):
        return PaymentValidation.fail(RULE_INVALID_AMOUNT, "Payment amount must be a number")

    if paid < 0:
        return PaymentValidation.fail(RULE_NEGATIVE_AMOUNT, "Payment amount cannot be negative")

    if status == PAYMENT_STATUS_PAID_FULL:
        if abs(paid - total) > TOLERANCE:
            return PaymentValidation.fail(
                RULE_PAID_FULL_MISMATCH,
                f"Paid amount ({paid}) must equal total amount ({total}) for full payment",
            )
    elif status == PAYMENT_STATUS_ADVANCE:
        if paid <= 0:
            return PaymentValidation.fail(RULE_ADVANCE_NOT_POSITIVE, "Advance payment must be greater than zero")
        if paid >= total:
            return PaymentValidation.fail(
                RULE_ADVANCE_NOT_BELOW_TOTAL,
                f"Advance payment ({paid}) must be less than total amount ({total})",
            )
    elif status == PAYMENT_STATUS_NOT_PAID:
        if paid > 0:
            return PaymentValidation.fail(RULE_NOT_PAID_WITH_AMOUNT, "Cannot have paid amount for unpaid orders")
    else:
        return PaymentValidation.fail(RULE_INVALID_STATUS, f"Invalid payment status: {status}")

    if method not in VALID_PAYMENT_METHODS:
        return PaymentValidation.fail(RULE_INVALID_METHOD, f"Invalid payment method: {method}")

    return PaymentValidation.ok()


def derive_payment_status(paid_amount, total_amount) -> str:
    """Payment status implied by a paid/total pair (0.01 tolerance)."""
    paid = round_money(paid_amount)
    total = round_money(total_amount)
    if paid <= 0:
        return PAYMENT_STATUS_NOT_PAID
    if paid >= total - TOLERANCE:
        return PAYMENT_STATUS_PAID_FULL
    return PAYMENT_STATUS_ADVANCE


def is_valid_method(method: str | None) -> bool:
    return method in VALID_PAYMENT_METHODS
