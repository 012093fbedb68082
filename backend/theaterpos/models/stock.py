from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class MonthlyStock(db.Model):
    """
    Per-product, per-month stock ledger.

    opening_lots carries the composition of opening_old_stock (lots with a
    remaining quantity brought forward from the previous month).
    stock_details holds the receipt lots of this month. Every counter is
    derived in stock_ledger_service, the only writer, which keeps:

        closing_balance = opening_old_stock - used_old_stock
                          - expired_old_stock + sum(receipt lot remaining)

    Writes compare-and-swap on version_id.
    """
    __tablename__ = "monthly_stock"
    __table_args__ = (
        db.UniqueConstraint("product_id", "year", "month", name="uq_monthly_stock_product_period"),
        db.Index("ix_monthly_stock_theater_period", "theater_id", "year", "month"),
        db.CheckConstraint("month >= 1 AND month <= 12", name="ck_monthly_stock_month_range"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    theater_id = db.Column(db.Integer, db.ForeignKey("theaters.id"), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    year = db.Column(db.Integer, nullable=False)
    month = db.Column(db.Integer, nullable=False)

    opening_old_stock = db.Column(db.Integer, nullable=False, default=0)
    used_old_stock = db.Column(db.Integer, nullable=False, default=0)
    expired_old_stock = db.Column(db.Integer, nullable=False, default=0)
    total_receipts = db.Column(db.Integer, nullable=False, default=0)
    total_expired = db.Column(db.Integer, nullable=False, default=0)
    sales = db.Column(db.Integer, nullable=False, default=0)
    closing_balance = db.Column(db.Integer, nullable=False, default=0)

    opening_lots = db.Column(db.JSON, nullable=False, default=list)
    stock_details = db.Column(db.JSON, nullable=False, default=list)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product", backref=db.backref("monthly_stock", lazy=True))

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "theater_id": self.theater_id,
            "product_id": self.product_id,
            "year": self.year,
            "month": self.month,
            "old_stock": self.opening_old_stock,
            "used_old_stock": self.used_old_stock,
            "expired_old_stock": self.expired_old_stock,
            "total_receipts": self.total_receipts,
            "total_expired": self.total_expired,
            "sales": self.sales,
            "closing_balance": self.closing_balance,
            "opening_lots": [dict(lot) for lot in (self.opening_lots or [])],
            "stock_details": [dict(lot) for lot in (self.stock_details or [])],
            "updated_at": to_utc_z(self.updated_at),
        }
