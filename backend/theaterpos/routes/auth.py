# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/theaterpos/routes/auth.py
"""
Authentication API routes

SECURITY FEATURES:
- Unknown username and wrong password return the same 401
- Account lockout after repeated failed attempts (429, no retry hint)
- Bearer tokens, at most five live per user
- Password change revokes every other session
"""

from flask import Blueprint, request, g

from ..decorators import require_auth
from ..models.auth import ROLE_CUSTOMER
from ..responses import ok
from ..services import auth_service, page_access_service, theater_service
from ..validation import get_json_body, parse_int, require_fields


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate and issue a session token.

    Body: {username, password, deviceInfo?}
    """
    data = get_json_body()
    username = data.get("username") or data.get("email")
    password = data.get("password")
    require_fields({"username": username, "password": password}, "username", "password")

    result = auth_service.login(
        username,
        password,
        device_info=data.get("deviceInfo") or request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
    )
    return ok(result.to_dict(), message="Login successful")


@auth_bp.post("/logout")
@require_auth
def logout_route():
    auth_service.logout(g.session_token)
    return ok(message="Logged out")


@auth_bp.post("/register")
def register_route():
    """
    Customer self-registration. The role is always customer; staff and
    admins are created through /api/users.
    """
    data = get_json_body()
    require_fields(data, "username", "email", "password")
    user = auth_service.register_user(
        data["username"],
        data["email"],
        data["password"],
        role=ROLE_CUSTOMER,
        full_name=data.get("fullName"),
        phone_number=data.get("phoneNumber"),
    )
    return ok(user.to_dict(), status=201, message="Registration successful")


@auth_bp.get("/me")
@require_auth
def me_route():
    """
    Query: theaterId? selects the catalog a super_admin sees; super_admin is
    bound to no theater, so without it the page list is empty. Theater users
    always get their own theater's pages.
    """
    user = g.current_user
    theater_id = request.args.get("theaterId")
    if theater_id is not None and user.is_super_admin:
        theater_id = theater_service.get_theater(parse_int(theater_id, "theaterId", minimum=1)).id
    else:
        theater_id = None
    return ok({
        "user": user.to_dict(),
        "accessible_pages": page_access_service.list_accessible(user, theater_id),
    })


@auth_bp.put("/password")
@require_auth
def change_password_route():
    """Body: {currentPassword, newPassword}. Other sessions are revoked."""
    data = get_json_body()
    require_fields(data, "currentPassword", "newPassword")
    revoked = auth_service.change_password(
        g.current_user,
        data["currentPassword"],
        data["newPassword"],
        keep_token=g.session_token,
    )
    return ok({"revoked_sessions": revoked}, message="Password updated")
