from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class SecurityEvent(db.Model):
    """
    Security event audit log with tenant context.

    Records failed logins, lockouts, denied page access, cross-theater access
    attempts and OTP issuance (the OTP rate limiter counts OTP_ISSUED rows).

    IMMUTABLE: Never update. Rows are deleted only by the retention cleanup.
    """
    __tablename__ = "security_events"
    __table_args__ = (
        db.Index("ix_security_events_user_type", "user_id", "event_type"),
        db.Index("ix_security_events_type_action", "event_type", "action"),
        db.Index("ix_security_events_theater_occurred", "theater_id", "occurred_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Nullable for pre-auth events
    theater_id = db.Column(db.Integer, db.ForeignKey("theaters.id"), nullable=True)
    user_id = db.Column(db.Integer, nullable=True, index=True)

    event_type = db.Column(db.String(64), nullable=False, index=True)  # LOGIN_FAILED, PAGE_ACCESS_DENIED, OTP_ISSUED, ...
    resource = db.Column(db.String(128), nullable=True)
    action = db.Column(db.String(128), nullable=True)

    success = db.Column(db.Boolean, nullable=False, index=True)
    reason = db.Column(db.Text, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(512), nullable=True)

    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "theater_id": self.theater_id,
            "user_id": self.user_id,
            "event_type": self.event_type,
            "resource": self.resource,
            "action": self.action,
            "success": self.success,
            "reason": self.reason,
            "ip_address": self.ip_address,
            "occurred_at": to_utc_z(self.occurred_at),
        }
