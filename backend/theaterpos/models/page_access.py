from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class PageAccess(db.Model):
    """
    The per-theater page catalog.

    Exactly one row per theater (unique theater_id). page_access_list holds
    {"page", "page_name", "route", "category", "is_active", "added_at"}
    entries; page identifiers are never null or empty and are unique within
    the list. Page names are not indexed.
    """
    __tablename__ = "page_access"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    theater_id = db.Column(db.Integer, db.ForeignKey("theaters.id"), nullable=False, unique=True, index=True)

    page_access_list = db.Column(db.JSON, nullable=False, default=list)

    # Derived in the write path
    total_pages = db.Column(db.Integer, nullable=False, default=0)
    active_pages = db.Column(db.Integer, nullable=False, default=0)
    inactive_pages = db.Column(db.Integer, nullable=False, default=0)
    last_modified_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_modified_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    version_id = db.Column(db.Integer, nullable=False, default=1)

    theater = db.relationship("Theater", backref=db.backref("page_access", uselist=False, lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "theater_id": self.theater_id,
            "pages": [dict(entry) for entry in (self.page_access_list or [])],
            "metadata": {
                "total_pages": self.total_pages,
                "active_pages": self.active_pages,
                "inactive_pages": self.inactive_pages,
                "last_modified_at": to_utc_z(self.last_modified_at),
                "last_modified_by": self.last_modified_by,
            },
        }
