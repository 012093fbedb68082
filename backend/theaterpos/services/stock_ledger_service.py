# Overview: Service-layer operations for the monthly stock ledger; encapsulates business logic and database work.

"""
Monthly Stock Ledger

WHY: Canteen stock is reported month by month. Each (product, year, month)
row opens with the previous month's closing balance (old stock), records
receipts as lots, draws sales from old stock first and then from receipt
lots oldest first, and records expiries.

INVARIANTS (checked in _recompute on every write):
- closing_balance = opening_old_stock - used_old_stock - expired_old_stock
                    + sum(receipt lot remaining)
- sum(opening lot remaining) = opening_old_stock - used_old_stock - expired_old_stock
- opening_old_stock of a month equals the closing balance of the latest
  earlier month at the moment the month is opened
- once a later month exists, earlier months are closed to writes

CONCURRENCY: Rows carry version_id. Each write re-reads the row, applies the
mutation and commits; a StaleDataError (concurrent writer) or an
IntegrityError (concurrent month creation) is retried up to three times and
then surfaces as Contention. Every write also runs under the operation
deadline.

Domain failures (InsufficientStock, ValidationError) roll back, leaving the
ledger unchanged.
"""

from __future__ import annotations

import copy
from datetime import date, datetime

from flask import current_app, has_app_context
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError

from ..errors import InsufficientStock, NotFound, ServiceError, ValidationError
from ..extensions import db
from ..models import MonthlyStock, Product
from ..time_utils import parse_iso_datetime, to_utc_z, utcnow
from . import stock_legacy
from .concurrency import Deadline, run_with_retry


RETRYABLE_ERRORS = (OperationalError, StaleDataError, IntegrityError)


def _warn(message: str, *args) -> None:
    if has_app_context():
        current_app.logger.warning(message, *args)


def next_period(year: int, month: int) -> tuple[int, int]:
    return (year + 1, 1) if month == 12 else (year, month + 1)


def _validate_period(year: int, month: int) -> None:
    if not 1 <= month <= 12:
        raise ValidationError("month must be between 1 and 12")
    if not 2000 <= year <= 2100:
        raise ValidationError("year must be between 2000 and 2100")


def _get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFound("Product not found")
    return product


def _load(product_id: int, year: int, month: int) -> MonthlyStock | None:
    return db.session.query(MonthlyStock).filter_by(product_id=product_id, year=year, month=month).first()


def _latest_before(product_id: int, year: int, month: int) -> MonthlyStock | None:
    return (
        db.session.query(MonthlyStock)
        .filter(
            MonthlyStock.product_id == product_id,
            db.or_(
                MonthlyStock.year < year,
                db.and_(MonthlyStock.year == year, MonthlyStock.month < month),
            ),
        )
        .order_by(MonthlyStock.year.desc(), MonthlyStock.month.desc())
        .first()
    )


def _has_later(product_id: int, year: int, month: int) -> bool:
    return (
        db.session.query(MonthlyStock.id)
        .filter(
            MonthlyStock.product_id == product_id,
            db.or_(
                MonthlyStock.year > year,
                db.and_(MonthlyStock.year == year, MonthlyStock.month > month),
            ),
        )
        .first()
        is not None
    )


def _carried_lots(previous: MonthlyStock) -> list[dict]:
    """Lots with a remaining quantity, as opening lots of the next month."""
    period = f"{previous.year:04d}-{previous.month:02d}"
    carried = []
    for lot in stock_legacy.normalize_lots(previous.opening_lots, "opening"):
        if lot["remaining"] > 0:
            carried.append({
                "lot_id": lot["lot_id"],
                "lot_date": lot["lot_date"],
                "unit_cost": lot["unit_cost"],
                "expires_at": lot["expires_at"],
                "opening_quantity": lot["remaining"],
                "remaining": lot["remaining"],
                "used": 0,
                "expired": 0,
                "source_period": lot["source_period"] or period,
                "batch_number": lot["batch_number"],
            })
    for lot in stock_legacy.normalize_lots(previous.stock_details, "receipt"):
        if lot["remaining"] > 0:
            carried.append({
                "lot_id": lot["lot_id"],
                "lot_date": lot["lot_date"],
                "unit_cost": lot["unit_cost"],
                "expires_at": lot["expires_at"],
                "opening_quantity": lot["remaining"],
                "remaining": lot["remaining"],
                "used": 0,
                "expired": 0,
                "source_period": period,
                "batch_number": lot["batch_number"],
            })
    return carried


def _normalize_row(doc: MonthlyStock) -> None:
    """Migrate legacy lot field names on touch."""
    if stock_legacy.needs_migration(doc.opening_lots, "opening"):
        doc.opening_lots = stock_legacy.normalize_lots(doc.opening_lots, "opening")
        flag_modified(doc, "opening_lots")
    if stock_legacy.needs_migration(doc.stock_details, "receipt"):
        doc.stock_details = stock_legacy.normalize_lots(doc.stock_details, "receipt")
        flag_modified(doc, "stock_details")


def _recompute(doc: MonthlyStock) -> None:
    """Derive totals and closing balance; reconcile opening lots with counters."""
    opening_lots = stock_legacy.normalize_lots(doc.opening_lots, "opening")
    receipt_lots = stock_legacy.normalize_lots(doc.stock_details, "receipt")

    expected_unused = (doc.opening_old_stock or 0) - (doc.used_old_stock or 0) - (doc.expired_old_stock or 0)
    if expected_unused < 0:
        raise ValidationError("Old stock usage exceeds the opening balance")

    lot_unused = sum(lot["remaining"] for lot in opening_lots)
    if lot_unused != expected_unused:
        _warn(
            "Opening lots of product %s %04d-%02d hold %s but counters say %s; reconciling",
            doc.product_id, doc.year, doc.month, lot_unused, expected_unused,
        )
        if lot_unused < expected_unused:
            opening_lots.append({
                "lot_id": f"unattributed-{doc.year:04d}-{doc.month:02d}-{stock_legacy.new_lot_id()}",
                "lot_date": date(doc.year, doc.month, 1).isoformat(),
                "unit_cost": None,
                "expires_at": None,
                "opening_quantity": expected_unused - lot_unused,
                "remaining": expected_unused - lot_unused,
                "used": 0,
                "expired": 0,
                "source_period": None,
                "batch_number": None,
            })
        else:
            excess = lot_unused - expected_unused
            for lot in reversed(opening_lots):
                take = min(lot["remaining"], excess)
                lot["remaining"] -= take
                excess -= take
                if excess == 0:
                    break

    doc.opening_lots = opening_lots
    doc.stock_details = receipt_lots
    flag_modified(doc, "opening_lots")
    flag_modified(doc, "stock_details")

    doc.total_receipts = sum(lot["quantity"] for lot in receipt_lots)
    doc.total_expired = sum(lot["expired"] for lot in receipt_lots)
    doc.closing_balance = expected_unused + sum(lot["remaining"] for lot in receipt_lots)


def _open_month(product: Product, year: int, month: int) -> MonthlyStock:
    """
    Return the (product, year, month) row, creating it from the latest
    earlier month when absent. Writes into a closed month are rejected.
    """
    doc = _load(product.id, year, month)
    if _has_later(product.id, year, month):
        raise ValidationError(f"{year:04d}-{month:02d} is closed; a later month already exists")
    if doc is not None:
        _normalize_row(doc)
        return doc

    previous = _latest_before(product.id, year, month)
    opening = previous.closing_balance if previous is not None else 0
    doc = MonthlyStock(
        theater_id=product.theater_id,
        product_id=product.id,
        year=year,
        month=month,
        opening_old_stock=opening,
        used_old_stock=0,
        expired_old_stock=0,
        total_receipts=0,
        total_expired=0,
        sales=0,
        closing_balance=opening,
        opening_lots=_carried_lots(previous) if previous is not None else [],
        stock_details=[],
        updated_at=utcnow(),
    )
    _recompute(doc)
    db.session.add(doc)
    db.session.flush()
    return doc


def _write(product_id: int, year: int, month: int, mutate, what: str) -> MonthlyStock:
    _validate_period(year, month)
    deadline = Deadline.from_config()
    product = _get_product(product_id)

    def _op():
        try:
            doc = _open_month(product, year, month)
            mutate(doc)
            _recompute(doc)
            doc.updated_at = utcnow()
            deadline.check(what)
        except ServiceError:
            db.session.rollback()
            raise
        db.session.commit()
        return doc

    return run_with_retry(_op, deadline=deadline, retry_on=RETRYABLE_ERRORS)


def _positive_quantity(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("quantity must be a positive integer")
    return quantity


def _as_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raise ValidationError("date is required")


def record_receipt(
    product_id: int,
    on_date: date,
    quantity: int,
    unit_cost: float | None = None,
    expires_at: datetime | None = None,
    *,
    batch_number: str | None = None,
) -> MonthlyStock:
    """Add a receipt lot to the month of on_date."""
    on_date = _as_date(on_date)
    expires_at = parse_iso_datetime(expires_at)
    quantity = _positive_quantity(quantity)
    if unit_cost is not None and unit_cost < 0:
        raise ValidationError("unit_cost must be >= 0")
    if expires_at is not None and expires_at <= datetime(on_date.year, on_date.month, on_date.day):
        raise ValidationError("expires_at must be after the receipt date")

    lot = {
        "lot_id": stock_legacy.new_lot_id(),
        "lot_date": on_date.isoformat(),
        "quantity": quantity,
        "unit_cost": unit_cost,
        "expires_at": to_utc_z(expires_at),
        "remaining": quantity,
        "sold": 0,
        "expired": 0,
        "batch_number": batch_number,
    }

    def _mutate(doc):
        lots = copy.deepcopy(doc.stock_details or [])
        lots.append(dict(lot))
        doc.stock_details = lots

    return _write(product_id, on_date.year, on_date.month, _mutate, "Stock receipt")


def _lot_order(indexed_lot):
    index, lot = indexed_lot
    return (lot.get("lot_date") or "", index)


def record_sale(product_id: int, on_date: date, quantity: int) -> MonthlyStock:
    """
    Draw quantity from opening old stock first, then from receipt lots
    oldest first. Raises InsufficientStock when the closing balance would go
    negative.
    """
    on_date = _as_date(on_date)
    quantity = _positive_quantity(quantity)

    def _mutate(doc):
        if doc.closing_balance - quantity < 0:
            raise InsufficientStock(
                f"Insufficient stock: {doc.closing_balance} available, {quantity} requested"
            )

        need = quantity
        opening_lots = stock_legacy.normalize_lots(doc.opening_lots, "opening")
        for _, lot in sorted(enumerate(opening_lots), key=_lot_order):
            if need == 0:
                break
            take = min(lot["remaining"], need)
            lot["remaining"] -= take
            lot["used"] += take
            doc.used_old_stock = (doc.used_old_stock or 0) + take
            need -= take

        receipt_lots = stock_legacy.normalize_lots(doc.stock_details, "receipt")
        for _, lot in sorted(enumerate(receipt_lots), key=_lot_order):
            if need == 0:
                break
            take = min(lot["remaining"], need)
            lot["remaining"] -= take
            lot["sold"] += take
            need -= take

        if need:
            raise InsufficientStock("Stock lots do not cover the requested quantity")

        doc.opening_lots = opening_lots
        doc.stock_details = receipt_lots
        doc.sales = (doc.sales or 0) + quantity

    return _write(product_id, on_date.year, on_date.month, _mutate, "Stock sale")


def _is_expired(lot: dict, now: datetime) -> bool:
    expires_at = lot.get("expires_at")
    return bool(expires_at) and lot["remaining"] > 0 and parse_iso_datetime(expires_at) <= now


def expire_lots(product_id: int, now: datetime | None = None) -> tuple[MonthlyStock | None, int]:
    """
    Expire every lot of now's month whose expires_at <= now.

    Opening-lot expiries add to expired_old_stock; receipt-lot expiries add
    to the lot's expired count. Returns (row, quantity expired). A sweep that
    finds nothing to expire writes nothing, so it never opens now's month;
    row is then the existing month row or None.
    """
    now = parse_iso_datetime(now) or utcnow()
    _get_product(product_id)
    current = _load(product_id, now.year, now.month)
    if current is not None:
        candidates = (
            stock_legacy.normalize_lots(current.opening_lots, "opening")
            + stock_legacy.normalize_lots(current.stock_details, "receipt")
        )
    else:
        previous = _latest_before(product_id, now.year, now.month)
        candidates = _carried_lots(previous) if previous is not None else []
    if not any(_is_expired(lot, now) for lot in candidates):
        return current, 0

    expired_total = {"quantity": 0}

    def _mutate(doc):
        opening_lots = stock_legacy.normalize_lots(doc.opening_lots, "opening")
        for lot in opening_lots:
            if _is_expired(lot, now):
                amount = lot["remaining"]
                lot["expired"] += amount
                lot["remaining"] = 0
                doc.expired_old_stock = (doc.expired_old_stock or 0) + amount
                expired_total["quantity"] += amount

        receipt_lots = stock_legacy.normalize_lots(doc.stock_details, "receipt")
        for lot in receipt_lots:
            if _is_expired(lot, now):
                amount = lot["remaining"]
                lot["expired"] += amount
                lot["remaining"] = 0
                expired_total["quantity"] += amount

        doc.opening_lots = opening_lots
        doc.stock_details = receipt_lots

    doc = _write(product_id, now.year, now.month, _mutate, "Stock expiry")
    return doc, expired_total["quantity"]


def rollover(product_id: int, from_year: int, from_month: int) -> MonthlyStock:
    """
    Open the month after (from_year, from_month) with opening old stock
    equal to its closing balance. Idempotent: an existing next month is
    returned unchanged.
    """
    _validate_period(from_year, from_month)
    product = _get_product(product_id)
    if _load(product_id, from_year, from_month) is None:
        raise NotFound(f"No stock history for {from_year:04d}-{from_month:02d}")

    year, month = next_period(from_year, from_month)
    deadline = Deadline.from_config()

    def _op():
        existing = _load(product_id, year, month)
        if existing is not None:
            return existing
        try:
            doc = _open_month(product, year, month)
            deadline.check("Stock rollover")
        except ServiceError:
            db.session.rollback()
            raise
        db.session.commit()
        return doc

    return run_with_retry(_op, deadline=deadline, retry_on=RETRYABLE_ERRORS)


def list_years(product_id: int) -> list[int]:
    _get_product(product_id)
    rows = (
        db.session.query(MonthlyStock.year)
        .filter(MonthlyStock.product_id == product_id)
        .distinct()
        .order_by(MonthlyStock.year.desc())
        .all()
    )
    return [row.year for row in rows]


def list_months(product_id: int, year: int) -> list[MonthlyStock]:
    _get_product(product_id)
    return (
        db.session.query(MonthlyStock)
        .filter(MonthlyStock.product_id == product_id, MonthlyStock.year == year)
        .order_by(MonthlyStock.month.asc())
        .all()
    )


def get_month(product_id: int, year: int, month: int) -> MonthlyStock:
    _validate_period(year, month)
    _get_product(product_id)
    doc = _load(product_id, year, month)
    if doc is None:
        raise NotFound(f"No stock history for {year:04d}-{month:02d}")
    return doc


def current_balance(product_id: int) -> int:
    """Closing balance of the latest month, 0 without history."""
    latest = (
        db.session.query(MonthlyStock)
        .filter(MonthlyStock.product_id == product_id)
        .order_by(MonthlyStock.year.desc(), MonthlyStock.month.desc())
        .first()
    )
    return latest.closing_balance if latest is not None else 0


def serialize(doc: MonthlyStock) -> dict:
    """Row view with lots normalized, whatever names the stored JSON uses."""
    data = doc.to_dict()
    data["opening_lots"] = stock_legacy.normalize_lots(doc.opening_lots, "opening")
    data["stock_details"] = stock_legacy.normalize_lots(doc.stock_details, "receipt")
    return data


def migrate_legacy_rows() -> int:
    """Rewrite every row whose lots still use legacy names. Returns rows changed."""
    changed = 0
    for doc in db.session.query(MonthlyStock).all():
        if stock_legacy.needs_migration(doc.opening_lots, "opening") or stock_legacy.needs_migration(doc.stock_details, "receipt"):
            _normalize_row(doc)
            _recompute(doc)
            doc.updated_at = utcnow()
            changed += 1
    db.session.commit()
    return changed


def import_documents(documents: list[dict], *, product_id: int | None = None) -> int:
    """
    Import monthly-stock documents (legacy or current names).

    Each document's productId must be an existing product id unless
    product_id overrides it. Existing (product, year, month) rows are
    replaced. Returns rows written.
    """
    written = 0
    normalized = []
    for raw in documents:
        if not isinstance(raw, dict):
            raise ValidationError("Each document must be a JSON object")
        target = product_id if product_id is not None else raw.get("productId", raw.get("product_id"))
        try:
            target = int(target)
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"Document productId {target!r} is not a product id") from exc
        try:
            fields = stock_legacy.normalize_document(raw)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        _validate_period(fields["year"], fields["month"])
        normalized.append((target, fields))

    normalized.sort(key=lambda item: (item[0], item[1]["year"], item[1]["month"]))
    for target, fields in normalized:
        product = _get_product(target)
        doc = _load(product.id, fields["year"], fields["month"])
        if doc is None:
            doc = MonthlyStock(
                theater_id=product.theater_id,
                product_id=product.id,
                year=fields["year"],
                month=fields["month"],
            )
            db.session.add(doc)
        doc.opening_old_stock = fields["opening_old_stock"]
        doc.used_old_stock = fields["used_old_stock"]
        doc.expired_old_stock = fields["expired_old_stock"]
        doc.sales = fields["sales"]
        doc.opening_lots = fields["opening_lots"]
        doc.stock_details = fields["stock_details"]
        _recompute(doc)
        if doc.closing_balance != fields["closing_balance"]:
            _warn(
                "Imported %04d-%02d for product %s: stored closing %s, derived %s",
                fields["year"], fields["month"], product.id, fields["closing_balance"], doc.closing_balance,
            )
        doc.updated_at = utcnow()
        written += 1

    db.session.commit()
    return written
