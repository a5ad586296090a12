from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class NotificationLog(db.Model):
    """
    Outcome of every outbound message (order ready SMS, daily closing report).

    Delivery is best-effort; this table is where failures end up.
    """
    __tablename__ = "notification_log"
    __table_args__ = (
        db.Index("ix_notification_log_kind_created", "kind", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=True, index=True)
    kind = db.Column(db.String(32), nullable=False)  # order_ready, daily_report
    recipient = db.Column(db.String(128), nullable=True)
    message = db.Column(db.Text, nullable=False)
    status = db.Column(db.String(16), nullable=False)  # sent, failed, skipped
    error_message = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "branch_id": self.branch_id,
            "kind": self.kind,
            "recipient": self.recipient,
            "message": self.message,
            "status": self.status,
            "error_message": self.error_message,
            "created_at": to_utc_z(self.created_at),
        }
