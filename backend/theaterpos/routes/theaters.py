# Overview: Flask API routes for theater provisioning; parses input and returns JSON responses.

from flask import Blueprint, g

from ..decorators import require_auth, require_role, require_theater_member, require_page_access
from ..models.auth import ROLE_SUPER_ADMIN
from ..responses import ok
from ..services import stock_ledger_service, theater_service
from ..validation import get_json_body, require_fields


theaters_bp = Blueprint("theaters", __name__, url_prefix="/api/theaters")


@theaters_bp.post("")
@require_auth
@require_role(ROLE_SUPER_ADMIN)
def create_theater_route():
    """
    Provision a theater with its page catalog, default roles and settings.

    Body: {name, code?}
    """
    data = get_json_body()
    require_fields(data, "name")
    theater = theater_service.provision_theater(data["name"], data.get("code"))
    return ok(theater.to_dict(), status=201, message="Theater created")


@theaters_bp.get("")
@require_auth
def list_theaters_route():
    user = g.current_user
    if user.is_super_admin:
        theaters = theater_service.list_theaters()
    elif user.theater_id is not None:
        theaters = [theater_service.get_theater(user.theater_id)]
    else:
        theaters = []
    return ok([theater.to_dict() for theater in theaters])


@theaters_bp.get("/<int:theater_id>")
@require_auth
@require_theater_member
def get_theater_route(theater_id: int):
    return ok(theater_service.get_theater(theater_id).to_dict())


@theaters_bp.patch("/<int:theater_id>")
@require_auth
@require_role(ROLE_SUPER_ADMIN)
def set_theater_active_route(theater_id: int):
    """Body: {isActive}. Deactivation blocks every member's login and tokens."""
    data = get_json_body()
    require_fields(data, "isActive")
    theater = theater_service.set_theater_active(theater_id, bool(data["isActive"]))
    return ok(theater.to_dict(), message="Theater updated")


@theaters_bp.get("/<int:theater_id>/order-interface")
@require_auth
@require_theater_member
@require_page_access("TheaterOrderInterface")
def order_interface_route(theater_id: int):
    """POS order screen bootstrap: active products with their stock on hand."""
    theater = theater_service.get_theater(theater_id)
    products = []
    for product in theater_service.list_products(theater_id):
        item = product.to_dict()
        item["stock_on_hand"] = stock_ledger_service.current_balance(product.id)
        products.append(item)
    return ok({"theater": theater.to_dict(), "products": products})
