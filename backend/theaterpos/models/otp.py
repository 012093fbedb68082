from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


OTP_PURPOSES = (
    "verification",
    "order",
    "order_verification",
    "login",
    "demo",
    "order_history",
    "favorites_access",
)

# Purposes whose HTTP verification consumes the record (exactly-once flows)
CONSUMING_PURPOSES = ("order", "order_verification")


class Otp(db.Model):
    """
    One-time password keyed by (phone_number, purpose).

    Rows whose expires_at has passed are removed by the reaper in
    maintenance_service. The code is never serialized.
    """
    __tablename__ = "otps"
    __table_args__ = (
        db.Index("ix_otps_phone_purpose", "phone_number", "purpose"),
        db.CheckConstraint("attempts >= 0", name="ck_otps_attempts_nonneg"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    public_id = db.Column(db.String(32), nullable=False, unique=True, index=True)

    phone_number = db.Column(db.String(32), nullable=False)
    code = db.Column(db.String(16), nullable=False)
    purpose = db.Column(db.String(32), nullable=False, default="verification")

    attempts = db.Column(db.Integer, nullable=False, default=0)
    verified = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False)
    expires_at = db.Column(db.DateTime(timezone=True), nullable=False, index=True)

    def to_dict(self) -> dict:
        return {
            "otp_id": self.public_id,
            "phone_number": self.phone_number,
            "purpose": self.purpose,
            "attempts": self.attempts,
            "verified": self.verified,
            "created_at": to_utc_z(self.created_at),
            "expires_at": to_utc_z(self.expires_at),
        }
