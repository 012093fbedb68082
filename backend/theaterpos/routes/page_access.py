# Overview: Flask API routes for the page-access matrix; parses input and returns JSON responses.

"""
Page Access API

GET is open to every member of the theater; every write requires
theater_admin (of that theater) or super_admin. Page identifiers in URL
paths are the catalog keys (e.g. TheaterOrderInterface), never display
names.
"""

from flask import Blueprint, g, request

from ..decorators import require_auth, require_role, require_theater_member
from ..errors import ValidationError
from ..models.auth import ROLE_SUPER_ADMIN, ROLE_THEATER_ADMIN
from ..permissions import PageCategory
from ..responses import ok
from ..services import page_access_service
from ..validation import get_json_body, require_fields


page_access_bp = Blueprint("page_access", __name__, url_prefix="/api/page-access")


@page_access_bp.get("/<int:theater_id>")
@require_auth
@require_theater_member
def get_page_access_route(theater_id: int):
    doc = page_access_service.get_page_access(theater_id)
    data = doc.to_dict() if doc is not None else {"theater_id": theater_id, "pages": []}
    data["roles"] = page_access_service.role_matrix(theater_id)
    return ok(data)


def _set_access(theater_id: int, has_access: bool):
    data = get_json_body()
    require_fields(data, "roleId", "page")
    entry = page_access_service.set_access(
        theater_id,
        data["roleId"],
        data["page"],
        has_access,
        actor_id=g.current_user.id,
    )
    return ok(entry, message="Access granted" if has_access else "Access revoked")


@page_access_bp.post("/<int:theater_id>/grant")
@require_auth
@require_role(ROLE_SUPER_ADMIN, ROLE_THEATER_ADMIN)
@require_theater_member
def grant_route(theater_id: int):
    """Body: {roleId, page}"""
    return _set_access(theater_id, True)


@page_access_bp.post("/<int:theater_id>/revoke")
@require_auth
@require_role(ROLE_SUPER_ADMIN, ROLE_THEATER_ADMIN)
@require_theater_member
def revoke_route(theater_id: int):
    """Body: {roleId, page}"""
    return _set_access(theater_id, False)


@page_access_bp.post("/<int:theater_id>/pages")
@require_auth
@require_role(ROLE_SUPER_ADMIN, ROLE_THEATER_ADMIN)
@require_theater_member
def register_page_route(theater_id: int):
    """Body: {page, pageName?, route?, category?}; every role starts denied."""
    data = get_json_body()
    require_fields(data, "page")
    entry, created = page_access_service.register_page(
        theater_id,
        data["page"],
        page_name=data.get("pageName"),
        route=data.get("route"),
        category=data.get("category") or PageCategory.ADMIN,
        actor_id=g.current_user.id,
    )
    return ok(entry, status=201 if created else 200, message="Page registered" if created else "Page already registered")


@page_access_bp.delete("/<int:theater_id>/pages/<page>")
@require_auth
@require_role(ROLE_SUPER_ADMIN, ROLE_THEATER_ADMIN)
@require_theater_member
def unregister_page_route(theater_id: int, page: str):
    touched = page_access_service.unregister_page(theater_id, page, actor_id=g.current_user.id)
    return ok({"page": page, "roles_updated": touched}, message="Page removed")


@page_access_bp.patch("/<int:theater_id>/pages/<page>")
@require_auth
@require_role(ROLE_SUPER_ADMIN, ROLE_THEATER_ADMIN)
@require_theater_member
def set_page_active_route(theater_id: int, page: str):
    """Body: {isActive}"""
    data = get_json_body()
    if not isinstance(data.get("isActive"), bool):
        raise ValidationError("isActive must be true or false")
    entry = page_access_service.set_page_active(theater_id, page, data["isActive"], actor_id=g.current_user.id)
    return ok(entry, message="Page updated")


@page_access_bp.get("/<int:theater_id>/check")
@require_auth
@require_theater_member
def check_route(theater_id: int):
    """?page=X; evaluates the caller's own role (super_admin always passes)."""
    page = (request.args.get("page") or "").strip()
    if not page:
        raise ValidationError("page is required")
    return ok({"page": page, "has_access": page_access_service.check_user(g.current_user, page)})


@page_access_bp.get("/<int:theater_id>/accessible")
@require_auth
@require_theater_member
def accessible_route(theater_id: int):
    pages = page_access_service.list_accessible(g.current_user, theater_id)
    return ok(pages)
