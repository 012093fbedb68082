from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


SETTING_CATEGORIES = ("general", "payment", "notification", "branding", "security", "system")
SETTING_TYPES = ("string", "number", "boolean", "object", "array")


class Setting(db.Model):
    """
    Theater setting stored as a tagged variant.

    value_type names the variant; value holds the JSON-encoded payload. Rows
    flagged is_system are written only by process-internal seeders.
    """
    __tablename__ = "settings"
    __table_args__ = (
        db.UniqueConstraint("theater_id", "category", "key", name="uq_settings_theater_category_key"),
        db.Index("ix_settings_theater_category", "theater_id", "category"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    theater_id = db.Column(db.Integer, db.ForeignKey("theaters.id"), nullable=False)
    category = db.Column(db.String(32), nullable=False)
    key = db.Column(db.String(100), nullable=False)

    value_type = db.Column(db.String(16), nullable=False, default="string")
    value = db.Column(db.JSON, nullable=True)

    description = db.Column(db.String(500), nullable=True)
    is_public = db.Column(db.Boolean, nullable=False, default=False)
    is_system = db.Column(db.Boolean, nullable=False, default=False)

    updated_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "theater_id": self.theater_id,
            "category": self.category,
            "key": self.key,
            "type": self.value_type,
            "value": self.value,
            "description": self.description,
            "is_public": self.is_public,
            "is_system": self.is_system,
            "updated_at": to_utc_z(self.updated_at),
        }
