# Overview: Flask API routes for theater products; parses input and returns JSON responses.

from flask import Blueprint, request

from ..decorators import require_auth, require_role, require_theater_member
from ..models.auth import ROLE_SUPER_ADMIN, ROLE_THEATER_ADMIN
from ..responses import ok
from ..services import theater_service
from ..validation import get_json_body, parse_int, require_fields


products_bp = Blueprint("products", __name__, url_prefix="/api/products")


@products_bp.get("/<int:theater_id>")
@require_auth
@require_theater_member
def list_products_route(theater_id: int):
    include_inactive = request.args.get("includeInactive", "").lower() in ("1", "true", "yes")
    theater_service.get_theater(theater_id)
    products = theater_service.list_products(theater_id, include_inactive=include_inactive)
    return ok([product.to_dict() for product in products])


@products_bp.post("/<int:theater_id>")
@require_auth
@require_role(ROLE_SUPER_ADMIN, ROLE_THEATER_ADMIN)
@require_theater_member
def create_product_route(theater_id: int):
    """Body: {name, unit?, priceCents?}"""
    data = get_json_body()
    require_fields(data, "name")
    price_cents = data.get("priceCents", 0)
    product = theater_service.create_product(
        theater_id,
        data["name"],
        unit=data.get("unit") or "pcs",
        price_cents=parse_int(price_cents, "priceCents", minimum=0),
    )
    return ok(product.to_dict(), status=201, message="Product created")
