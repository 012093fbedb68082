# Overview: Flask API routes for user administration; parses input and returns JSON responses.

"""
User administration.

super_admin manages every user. theater_admin manages the staff of its own
theater only: it may create theater_staff users, and may update or delete
staff and admins bound to the same theater (never super admins or
customers).
"""

from flask import Blueprint, g, request

from ..decorators import require_auth, require_role, ensure_theater_member
from ..errors import Forbidden
from ..models.auth import ROLE_SUPER_ADMIN, ROLE_THEATER_ADMIN, ROLE_THEATER_STAFF, THEATER_BOUND_ROLES
from ..responses import ok
from ..services import auth_service, login_throttle_service
from ..validation import get_json_body, parse_int, require_fields


users_bp = Blueprint("users", __name__, url_prefix="/api/users")


def _managed_user(user_id: int):
    """Load user_id and check the caller may manage it."""
    user = auth_service.get_user(user_id)
    actor = g.current_user
    if actor.is_super_admin:
        return user
    if user.role not in THEATER_BOUND_ROLES or user.theater_id != actor.theater_id:
        raise Forbidden("You cannot manage this user")
    return user


@users_bp.get("")
@require_auth
@require_role(ROLE_SUPER_ADMIN, ROLE_THEATER_ADMIN)
def list_users_route():
    actor = g.current_user
    role = request.args.get("role")
    if actor.is_super_admin:
        theater_id = request.args.get("theaterId")
        theater_id = parse_int(theater_id, "theaterId", minimum=1) if theater_id else None
    else:
        theater_id = actor.theater_id
    users = auth_service.list_users(theater_id=theater_id, role=role)
    return ok([user.to_dict() for user in users])


@users_bp.post("")
@require_auth
@require_role(ROLE_SUPER_ADMIN, ROLE_THEATER_ADMIN)
def create_user_route():
    """
    Body: {username, email, password, role?, theaterId?, roleId?, fullName?,
    phoneNumber?, permissions?}
    """
    data = get_json_body()
    require_fields(data, "username", "email", "password")
    actor = g.current_user

    role = data.get("role") or ROLE_THEATER_STAFF
    theater_id = data.get("theaterId")
    if theater_id is not None:
        theater_id = parse_int(theater_id, "theaterId", minimum=1)

    if not actor.is_super_admin:
        if role != ROLE_THEATER_STAFF:
            raise Forbidden("Theater admins can only create theater staff")
        if theater_id is None:
            theater_id = actor.theater_id
        ensure_theater_member(theater_id)

    user = auth_service.register_user(
        data["username"],
        data["email"],
        data["password"],
        role=role,
        theater_id=theater_id,
        role_id=data.get("roleId"),
        full_name=data.get("fullName"),
        phone_number=data.get("phoneNumber"),
        permissions=data.get("permissions"),
    )
    return ok(user.to_dict(), status=201, message="User created")


@users_bp.get("/<int:user_id>")
@require_auth
@require_role(ROLE_SUPER_ADMIN, ROLE_THEATER_ADMIN)
def get_user_route(user_id: int):
    user = _managed_user(user_id)
    data = user.to_dict()
    data["lockout"] = login_throttle_service.get_lockout_status(user)
    return ok(data)


@users_bp.put("/<int:user_id>")
@require_auth
@require_role(ROLE_SUPER_ADMIN, ROLE_THEATER_ADMIN)
def update_user_route(user_id: int):
    """Body: any of {role, theaterId, roleId, status, email, fullName, phoneNumber, permissions, password}."""
    user = _managed_user(user_id)
    data = get_json_body()
    actor = g.current_user

    theater_id = data.get("theaterId")
    if theater_id is not None:
        theater_id = parse_int(theater_id, "theaterId", minimum=1)

    if not actor.is_super_admin:
        if data.get("role") not in (None, user.role, ROLE_THEATER_STAFF):
            raise Forbidden("Theater admins can only assign the theater_staff role")
        if theater_id is not None and theater_id != actor.theater_id:
            raise Forbidden("Users cannot be moved to another theater")
        if "permissions" in data:
            raise Forbidden("Only super admins can change resource permissions")

    user = auth_service.update_user(
        user,
        role=data.get("role"),
        theater_id=theater_id,
        role_id=data.get("roleId"),
        status=data.get("status"),
        email=data.get("email"),
        full_name=data.get("fullName"),
        phone_number=data.get("phoneNumber"),
        permissions=data.get("permissions"),
        password=data.get("password"),
    )
    return ok(user.to_dict(), message="User updated")


@users_bp.delete("/<int:user_id>")
@require_auth
@require_role(ROLE_SUPER_ADMIN, ROLE_THEATER_ADMIN)
def delete_user_route(user_id: int):
    user = _managed_user(user_id)
    if user.id == g.current_user.id:
        raise Forbidden("You cannot delete your own account")
    auth_service.delete_user(user)
    return ok(message="User deleted")
