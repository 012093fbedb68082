# Overview: Flask API routes for monthly stock history; parses input and returns JSON responses.

"""
Stock History API

Reads are open to members of the product's theater. Writes (receipts,
sales, expiry) additionally require the StockManagement page.
"""

from flask import Blueprint, g, request

from ..decorators import require_auth, require_page_access, require_product_member
from ..responses import ok
from ..services import stock_ledger_service
from ..time_utils import utcnow
from ..validation import (
    get_json_body,
    parse_date_field,
    parse_int,
    parse_optional_datetime,
    parse_optional_float,
    require_fields,
)


stock_history_bp = Blueprint("stock_history", __name__, url_prefix="/api/stock-history")


@stock_history_bp.get("/<int:product_id>/years")
@require_auth
@require_product_member
def years_route(product_id: int):
    return ok(stock_ledger_service.list_years(product_id))


@stock_history_bp.get("/<int:product_id>/months")
@require_auth
@require_product_member
def months_route(product_id: int):
    """?year=Y"""
    year = parse_int(request.args.get("year"), "year", minimum=2000, maximum=2100)
    months = stock_ledger_service.list_months(product_id, year)
    return ok([stock_ledger_service.serialize(doc) for doc in months])


@stock_history_bp.get("/<int:product_id>")
@require_auth
@require_product_member
def month_route(product_id: int):
    """?year=Y&month=M"""
    year = parse_int(request.args.get("year"), "year", minimum=2000, maximum=2100)
    month = parse_int(request.args.get("month"), "month", minimum=1, maximum=12)
    doc = stock_ledger_service.get_month(product_id, year, month)
    return ok(stock_ledger_service.serialize(doc))


@stock_history_bp.post("/<int:product_id>/receipts")
@require_auth
@require_product_member
@require_page_access("StockManagement")
def receipt_route(product_id: int):
    """Body: {date, quantity, unitCost?, expiresAt?, batchNumber?}"""
    data = get_json_body()
    require_fields(data, "date", "quantity")
    doc = stock_ledger_service.record_receipt(
        product_id,
        parse_date_field(data["date"], "date"),
        parse_int(data["quantity"], "quantity", minimum=1),
        parse_optional_float(data.get("unitCost"), "unitCost"),
        parse_optional_datetime(data.get("expiresAt"), "expiresAt"),
        batch_number=data.get("batchNumber"),
    )
    return ok(stock_ledger_service.serialize(doc), status=201, message="Receipt recorded")


@stock_history_bp.post("/<int:product_id>/sales")
@require_auth
@require_product_member
@require_page_access("StockManagement")
def sale_route(product_id: int):
    """Body: {date, quantity}"""
    data = get_json_body()
    require_fields(data, "date", "quantity")
    doc = stock_ledger_service.record_sale(
        product_id,
        parse_date_field(data["date"], "date"),
        parse_int(data["quantity"], "quantity", minimum=1),
    )
    return ok(stock_ledger_service.serialize(doc), message="Sale recorded")


@stock_history_bp.post("/<int:product_id>/expire")
@require_auth
@require_product_member
@require_page_access("StockManagement")
def expire_route(product_id: int):
    """Body: {now?}; defaults to the current time."""
    data = get_json_body()
    now = parse_optional_datetime(data.get("now"), "now") or utcnow()
    doc, expired = stock_ledger_service.expire_lots(g.product.id, now)
    return ok({
        "expired_quantity": expired,
        "month": stock_ledger_service.serialize(doc) if doc is not None else None,
    })


@stock_history_bp.post("/<int:product_id>/rollover")
@require_auth
@require_product_member
@require_page_access("StockManagement")
def rollover_route(product_id: int):
    """Body: {year, month}; opens the following month."""
    data = get_json_body()
    require_fields(data, "year", "month")
    doc = stock_ledger_service.rollover(
        product_id,
        parse_int(data["year"], "year", minimum=2000, maximum=2100),
        parse_int(data["month"], "month", minimum=1, maximum=12),
    )
    return ok(stock_ledger_service.serialize(doc))
