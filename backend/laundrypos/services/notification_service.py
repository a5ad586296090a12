# Overview: Service-layer operations for outbound notifications; best-effort delivery with a log sink.

"""
Notifications

WHY: Customers get an SMS when their laundry is ready and the owner gets a
closing report when a day is reconciled. Delivery is somebody else's
problem (SMS/WhatsApp providers); this module only formats messages, hands
them to a gateway and records the outcome.

RULES:
- Only called after the financial transaction has committed
- Never raises: failures are logged and recorded, the caller gets False
"""

from __future__ import annotations

from typing import Protocol

from flask import current_app

from ..extensions import db
from ..models import NotificationLog
from ..time_utils import utcnow


KIND_ORDER_READY = "order_ready"
KIND_DAILY_REPORT = "daily_report"

STATUS_SENT = "sent"
STATUS_FAILED = "failed"
STATUS_SKIPPED = "skipped"

GATEWAY_EXTENSION_KEY = "notification_gateway"


class NotificationGateway(Protocol):
    def send(self, recipient: str, message: str) -> None:
        """Deliver one message; raise on failure."""


class LoggingNotificationGateway:
    """Default gateway: writes the message to the application log."""

    def send(self, recipient: str, message: str) -> None:
        current_app.logger.info("Notification to %s: %s", recipient, message)


def init_gateway(app, gateway: NotificationGateway | None = None) -> None:
    app.extensions[GATEWAY_EXTENSION_KEY] = gateway or LoggingNotificationGateway()


def get_gateway() -> NotificationGateway:
    gateway = current_app.extensions.get(GATEWAY_EXTENSION_KEY)
    if gateway is None:
        gateway = LoggingNotificationGateway()
        current_app.extensions[GATEWAY_EXTENSION_KEY] = gateway
    return gateway


def _record(kind: str, recipient: str | None, message: str, status: str, branch_id: int | None, error: str | None) -> None:
    try:
        db.session.add(NotificationLog(
            branch_id=branch_id,
            kind=kind,
            recipient=recipient,
            message=message,
            status=status,
            error_message=error,
            created_at=utcnow(),
        ))
        db.session.commit()
    except Exception:
        db.session.rollback()
        current_app.logger.exception("Failed to record %s notification outcome", kind)


def dispatch(kind: str, recipient: str | None, message: str, *, branch_id: int | None = None) -> bool:
    """
    Send one message through the configured gateway.

    Returns:
        True when the gateway accepted the message, False otherwise
    """
    if not recipient:
        current_app.logger.info("Skipping %s notification: no recipient", kind)
        _record(kind, recipient, message, STATUS_SKIPPED, branch_id, "No recipient")
        return False

    try:
        get_gateway().send(recipient, message)
    except Exception as exc:
        current_app.logger.warning("Failed to send %s notification to %s: %s", kind, recipient, exc)
        _record(kind, recipient, message, STATUS_FAILED, branch_id, str(exc))
        return False

    _record(kind, recipient, message, STATUS_SENT, branch_id, None)
    return True


# =============================================================================
# MESSAGES
# =============================================================================

def order_ready_message(customer_name: str, receipt_number: str, balance_due: str | None = None) -> str:
    message = f"Hello {customer_name}, your laundry (receipt {receipt_number}) is ready for collection."
    if balance_due is not None:
        message += f" Balance due: {balance_due}."
    return message + " Thank you."


def daily_report_message(summary: dict, branch_name: str | None = None) -> str:
    lines = [
        f"Daily closing report {summary['date']}" + (f" - {branch_name}" if branch_name else ""),
        f"Opening balance: {summary['opening_balance']}",
        f"Cash sales: {summary['cash_sales']}",
        f"Book sales: {summary['book_sales']}",
        f"Card sales: {summary['card_sales']}",
        f"Mobile money sales: {summary['mobile_money_sales']}",
        f"Expenses (cash): {summary['expenses_from_cash']}",
        f"Bank deposits: {summary['bank_deposits']}",
        f"Closing balance: {summary['closing_balance']}",
    ]
    if summary.get("reconciled_by"):
        lines.append(f"Reconciled by: {summary['reconciled_by']}")
    return "\n".join(lines)
