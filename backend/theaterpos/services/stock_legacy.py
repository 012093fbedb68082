# Overview: Read adapter between legacy monthly-stock documents and the ledger schema.

"""
Legacy Monthly-Stock Field Adapter

WHY: Older exports and imported rows use the names carryForward (now
oldStock), usedStock / totalUsedStock (now sales), usedCarryForwardStock
(now usedOldStock) and expiredCarryForwardStock / expiredStock (now
expiredOldStock). Reads accept every spelling; writes only ever produce the
current names. Rows are migrated opportunistically the next time the ledger
writes them.

Two directions:
- normalize_document(): legacy (or current) document -> ledger fields
- to_document(): ledger row -> export document with current names only
"""

from __future__ import annotations

import secrets
from datetime import date, datetime

from flask import current_app, has_app_context

from ..time_utils import parse_iso_date, parse_iso_datetime, to_utc_z


MONTH_NAMES = (
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
)

# ledger field -> accepted spellings, current name first
DOCUMENT_ALIASES = {
    "opening_old_stock": ("oldStock", "opening_old_stock", "old_stock", "openingOldStock", "carryForward", "carry_forward"),
    "used_old_stock": ("usedOldStock", "used_old_stock", "usedCarryForwardStock", "used_carry_forward_stock"),
    "expired_old_stock": (
        "expiredOldStock", "expired_old_stock", "expiredCarryForwardStock",
        "expired_carry_forward_stock", "expiredStock",
    ),
    "sales": ("sales", "totalSales", "total_sales", "usedStock", "used_stock", "totalUsedStock", "total_used_stock"),
    "total_receipts": ("totalInvordStock", "total_receipts", "totalReceipts"),
    "closing_balance": ("closingBalance", "closing_balance"),
}

RECEIPT_LOT_ALIASES = {
    "lot_id": ("lot_id", "lotId", "_id", "id"),
    "lot_date": ("lot_date", "date"),
    "quantity": ("quantity", "invordStock"),
    "unit_cost": ("unit_cost", "unitCost", "cost"),
    "expires_at": ("expires_at", "expiresAt", "expireDate"),
    "remaining": ("remaining",),
    "sold": ("sold", "sales", "usedStock", "used_stock"),
    "expired": ("expired", "expiredStock"),
    "batch_number": ("batch_number", "batchNumber"),
}

OPENING_LOT_ALIASES = {
    "lot_id": ("lot_id", "lotId", "_id", "id"),
    "lot_date": ("lot_date", "date"),
    "unit_cost": ("unit_cost", "unitCost", "cost"),
    "expires_at": ("expires_at", "expiresAt", "expireDate"),
    "remaining": ("remaining",),
    "opening_quantity": ("opening_quantity", "oldStock", "old_stock", "carryForward", "carry_forward"),
    "used": ("used", "usedOldStock", "usedCarryForwardStock"),
    "expired": ("expired", "expiredOldStock", "expiredCarryForwardStock"),
    "source_period": ("source_period", "sourcePeriod"),
    "batch_number": ("batch_number", "batchNumber"),
}

RECEIPT_TYPES = ("ADDED", "RECEIPT", "RECEIVED")


def _warn(message: str, *args) -> None:
    if has_app_context():
        current_app.logger.warning(message, *args)


def _pick(source: dict, aliases: tuple, default=None):
    for name in aliases:
        if name in source and source[name] is not None:
            return source[name]
    return default


def _as_int(value, default: int = 0) -> int:
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return int(value)
    return int(round(float(value)))


def _as_cost(value):
    if value is None or value == "":
        return None
    return float(value)


def _iso_date(value) -> str | None:
    parsed = parse_iso_date(value) if value is not None else None
    return parsed.isoformat() if parsed else None


def _iso_datetime(value) -> str | None:
    if value is None or value == "":
        return None
    if isinstance(value, date) and not isinstance(value, datetime):
        value = value.isoformat()
    return to_utc_z(parse_iso_datetime(value))


def new_lot_id() -> str:
    return secrets.token_hex(8)


def parse_month(value) -> int:
    """Accept 1-12, '1'-'12', 'YYYY-MM' or an English month name."""
    if isinstance(value, int) and not isinstance(value, bool):
        month = value
    else:
        text = str(value or "").strip()
        if text.isdigit():
            month = int(text)
        elif len(text) == 7 and text[4] == "-" and text[5:].isdigit():
            month = int(text[5:])
        else:
            lowered = text.lower()
            matches = [i + 1 for i, name in enumerate(MONTH_NAMES) if name.lower() == lowered or name[:3].lower() == lowered]
            if not matches:
                raise ValueError(f"Unrecognized month: {value!r}")
            month = matches[0]
    if not 1 <= month <= 12:
        raise ValueError(f"Month out of range: {value!r}")
    return month


def normalize_receipt_lot(entry: dict) -> dict | None:
    """
    Map a receipt lot (any spelling) to the ledger shape.

    Legacy day entries that are not receipts (SOLD, EXPIRED, ...) return None.
    """
    if not isinstance(entry, dict):
        return None
    entry_type = entry.get("type")
    quantity = _as_int(_pick(entry, RECEIPT_LOT_ALIASES["quantity"]))
    if entry_type is not None and str(entry_type).upper() not in RECEIPT_TYPES:
        return None
    if quantity <= 0:
        return None

    sold = _as_int(_pick(entry, RECEIPT_LOT_ALIASES["sold"]))
    expired = _as_int(_pick(entry, RECEIPT_LOT_ALIASES["expired"]))
    remaining = _pick(entry, RECEIPT_LOT_ALIASES["remaining"])
    remaining = quantity - sold - expired if remaining is None else _as_int(remaining)
    remaining = max(0, min(quantity, remaining))

    return {
        "lot_id": str(_pick(entry, RECEIPT_LOT_ALIASES["lot_id"]) or new_lot_id()),
        "lot_date": _iso_date(_pick(entry, RECEIPT_LOT_ALIASES["lot_date"])),
        "quantity": quantity,
        "unit_cost": _as_cost(_pick(entry, RECEIPT_LOT_ALIASES["unit_cost"])),
        "expires_at": _iso_datetime(_pick(entry, RECEIPT_LOT_ALIASES["expires_at"])),
        "remaining": remaining,
        "sold": sold,
        "expired": expired,
        "batch_number": _pick(entry, RECEIPT_LOT_ALIASES["batch_number"]),
    }


def normalize_opening_lot(entry: dict) -> dict | None:
    if not isinstance(entry, dict):
        return None
    used = _as_int(_pick(entry, OPENING_LOT_ALIASES["used"]))
    expired = _as_int(_pick(entry, OPENING_LOT_ALIASES["expired"]))
    remaining = _pick(entry, OPENING_LOT_ALIASES["remaining"])
    opening_quantity = _pick(entry, OPENING_LOT_ALIASES["opening_quantity"])
    if remaining is None and opening_quantity is None:
        return None
    if remaining is None:
        remaining = _as_int(opening_quantity) - used - expired
    remaining = max(0, _as_int(remaining))
    if opening_quantity is None:
        opening_quantity = remaining + used + expired

    return {
        "lot_id": str(_pick(entry, OPENING_LOT_ALIASES["lot_id"]) or new_lot_id()),
        "lot_date": _iso_date(_pick(entry, OPENING_LOT_ALIASES["lot_date"])),
        "unit_cost": _as_cost(_pick(entry, OPENING_LOT_ALIASES["unit_cost"])),
        "expires_at": _iso_datetime(_pick(entry, OPENING_LOT_ALIASES["expires_at"])),
        "opening_quantity": _as_int(opening_quantity),
        "remaining": remaining,
        "used": used,
        "expired": expired,
        "source_period": _pick(entry, OPENING_LOT_ALIASES["source_period"]),
        "batch_number": _pick(entry, OPENING_LOT_ALIASES["batch_number"]),
    }


def normalize_lots(entries, kind: str) -> list[dict]:
    normalizer = normalize_opening_lot if kind == "opening" else normalize_receipt_lot
    return [lot for lot in (normalizer(entry) for entry in entries or []) if lot is not None]


def needs_migration(entries, kind: str) -> bool:
    """True when any stored lot carries a non-current field name."""
    aliases = OPENING_LOT_ALIASES if kind == "opening" else RECEIPT_LOT_ALIASES
    current = {names[0] for names in aliases.values()}
    return any(isinstance(entry, dict) and not set(entry).issubset(current) for entry in entries or [])


def normalize_document(doc: dict) -> dict:
    """
    Convert a monthly-stock document (legacy or current names) into ledger
    fields: year, month, counters, opening_lots and stock_details.

    Legacy documents have no opening-lot composition; one synthetic lot
    carries the unused opening balance. Receipt-lot remaining quantities are
    allocated newest-first so that the ledger invariant holds.
    """
    year = _as_int(_pick(doc, ("year",)))
    month = parse_month(_pick(doc, ("monthNumber", "month_number", "month")))
    period = f"{year:04d}-{month:02d}"

    fields = {
        name: _as_int(_pick(doc, aliases))
        for name, aliases in DOCUMENT_ALIASES.items()
    }

    opening_source = _pick(doc, ("openingLots", "opening_lots"))
    if opening_source:
        opening_lots = normalize_lots(opening_source, "opening")
    else:
        unused_opening = fields["opening_old_stock"] - fields["used_old_stock"] - fields["expired_old_stock"]
        if unused_opening < 0:
            _warn("Legacy stock %s: used+expired old stock exceeds opening; clamping", period)
            unused_opening = 0
        opening_lots = []
        if unused_opening > 0 or fields["opening_old_stock"] > 0:
            opening_lots.append({
                "lot_id": f"opening-{period}",
                "lot_date": date(year, month, 1).isoformat(),
                "unit_cost": None,
                "expires_at": None,
                "opening_quantity": fields["opening_old_stock"],
                "remaining": unused_opening,
                "used": fields["used_old_stock"],
                "expired": fields["expired_old_stock"],
                "source_period": None,
                "batch_number": None,
            })

    detail_source = _pick(doc, ("stockDetails", "stock_details"), []) or []
    receipt_lots = normalize_lots(detail_source, "receipt")

    # Legacy day entries carry running balances, not per-lot remainders
    legacy_day_entries = any(
        isinstance(entry, dict) and "type" in entry and "remaining" not in entry
        for entry in detail_source
    )
    has_closing = _pick(doc, DOCUMENT_ALIASES["closing_balance"]) is not None
    if legacy_day_entries and receipt_lots and has_closing:
        unused_opening = sum(lot["remaining"] for lot in opening_lots)
        to_allocate = max(0, fields["closing_balance"] - unused_opening)
        for lot in sorted(receipt_lots, key=lambda l: l["lot_date"] or "", reverse=True):
            take = min(lot["quantity"] - lot["expired"], to_allocate)
            take = max(0, take)
            lot["remaining"] = take
            lot["sold"] = max(0, lot["quantity"] - lot["expired"] - take)
            to_allocate -= take
        if to_allocate > 0:
            _warn("Legacy stock %s: closing balance exceeds receipts by %s", period, to_allocate)

    return {
        "year": year,
        "month": month,
        "opening_old_stock": fields["opening_old_stock"],
        "used_old_stock": fields["used_old_stock"],
        "expired_old_stock": fields["expired_old_stock"],
        "sales": fields["sales"],
        "closing_balance": fields["closing_balance"],
        "opening_lots": opening_lots,
        "stock_details": receipt_lots,
    }


def to_document(row) -> dict:
    """Export a MonthlyStock row using current field names only."""
    return {
        "theaterId": row.theater_id,
        "productId": row.product_id,
        "year": row.year,
        "month": MONTH_NAMES[row.month - 1],
        "monthNumber": row.month,
        "oldStock": row.opening_old_stock,
        "usedOldStock": row.used_old_stock,
        "expiredOldStock": row.expired_old_stock,
        "totalInvordStock": row.total_receipts,
        "totalExpiredStock": row.total_expired,
        "sales": row.sales,
        "closingBalance": row.closing_balance,
        "openingLots": [
            {
                "lotId": lot["lot_id"],
                "date": lot.get("lot_date"),
                "oldStock": lot.get("opening_quantity", 0),
                "usedOldStock": lot.get("used", 0),
                "expiredOldStock": lot.get("expired", 0),
                "remaining": lot.get("remaining", 0),
                "expireDate": lot.get("expires_at"),
                "unitCost": lot.get("unit_cost"),
            }
            for lot in normalize_lots(row.opening_lots, "opening")
        ],
        "stockDetails": [
            {
                "lotId": lot["lot_id"],
                "date": lot.get("lot_date"),
                "type": "ADDED",
                "invordStock": lot["quantity"],
                "sales": lot.get("sold", 0),
                "expiredStock": lot.get("expired", 0),
                "remaining": lot.get("remaining", 0),
                "expireDate": lot.get("expires_at"),
                "unitCost": lot.get("unit_cost"),
                "batchNumber": lot.get("batch_number"),
            }
            for lot in normalize_lots(row.stock_details, "receipt")
        ],
    }
