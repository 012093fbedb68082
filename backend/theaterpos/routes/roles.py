# Overview: Flask API routes for theater roles; parses input and returns JSON responses.

from flask import Blueprint, request

from ..decorators import require_auth, require_role, require_theater_member
from ..errors import ValidationError
from ..models.auth import ROLE_SUPER_ADMIN, ROLE_THEATER_ADMIN
from ..responses import ok
from ..services import role_service
from ..services.page_access_service import get_role
from ..validation import get_json_body, require_fields


roles_bp = Blueprint("roles", __name__, url_prefix="/api/roles")


@roles_bp.get("/<int:theater_id>")
@require_auth
@require_theater_member
def list_roles_route(theater_id: int):
    include_inactive = request.args.get("includeInactive", "true").lower() not in ("0", "false", "no")
    roles = role_service.list_roles(theater_id, include_inactive=include_inactive)
    return ok([role.to_dict() for role in roles])


@roles_bp.get("/<int:theater_id>/<role_id>")
@require_auth
@require_theater_member
def get_role_route(theater_id: int, role_id: str):
    return ok(get_role(theater_id, role_id).to_dict())


@roles_bp.post("/<int:theater_id>")
@require_auth
@require_role(ROLE_SUPER_ADMIN, ROLE_THEATER_ADMIN)
@require_theater_member
def create_role_route(theater_id: int):
    """
    Body: {name, description?, pages?: [page, ...]}

    Every registered page gets an entry; only the listed pages are granted.
    """
    data = get_json_body()
    require_fields(data, "name")
    pages = data.get("pages") or []
    if not isinstance(pages, list) or not all(isinstance(page, str) for page in pages):
        raise ValidationError("pages must be a list of page identifiers")
    role = role_service.create_role(
        theater_id,
        data["name"],
        description=data.get("description"),
        granted_pages=tuple(pages),
    )
    return ok(role.to_dict(), status=201, message="Role created")


@roles_bp.put("/<int:theater_id>/<role_id>")
@require_auth
@require_role(ROLE_SUPER_ADMIN, ROLE_THEATER_ADMIN)
@require_theater_member
def update_role_route(theater_id: int, role_id: str):
    """Body: any of {name, description, isActive, permissions: {page: bool}}"""
    data = get_json_body()
    is_active = data.get("isActive")
    role = role_service.update_role(
        theater_id,
        role_id,
        name=data.get("name"),
        description=data.get("description"),
        is_active=None if is_active is None else bool(is_active),
    )
    grants = data.get("permissions")
    if grants is not None:
        if not isinstance(grants, dict):
            raise ValidationError("permissions must map page identifiers to true/false")
        role = role_service.replace_permissions(theater_id, role_id, grants)
    return ok(role.to_dict(), message="Role updated")


@roles_bp.delete("/<int:theater_id>/<role_id>")
@require_auth
@require_role(ROLE_SUPER_ADMIN, ROLE_THEATER_ADMIN)
@require_theater_member
def delete_role_route(theater_id: int, role_id: str):
    role_service.delete_role(theater_id, role_id)
    return ok(message="Role deleted")
