# Overview: Service-layer operations for auth; encapsulates business logic and database work.

"""
Authentication Service

WHY: Every action must be attributable. Uses bcrypt for credential hashing
and a per-user lockout counter against brute force.

SECURITY NOTES:
- Passwords hashed with bcrypt (work factor BCRYPT_LOG_ROUNDS, 12 by default)
- Unknown usernames still pay for one bcrypt check, and return the same
  InvalidCredentials as a wrong password
- AccountLocked does not reveal when the lock ends
- Session tokens managed separately (see session_service.py)
"""

from __future__ import annotations

import re
from dataclasses import dataclass

import bcrypt
from flask import current_app, has_app_context

from ..errors import (
    AccountLocked,
    Conflict,
    Forbidden,
    InvalidCredentials,
    NotFound,
    UnknownRole,
    ValidationError,
)
from ..extensions import db
from ..models import AuthToken, Role, Theater, User
from ..models.auth import (
    ROLE_CUSTOMER,
    ROLE_SUPER_ADMIN,
    ROLE_THEATER_ADMIN,
    STATUS_ACTIVE,
    THEATER_BOUND_ROLES,
    USER_ROLES,
    USER_STATUSES,
)
from ..permissions import THEATER_ADMIN_ROLE_ID
from ..time_utils import utcnow
from . import login_throttle_service, permission_service, session_service
from .concurrency import Deadline


MIN_PASSWORD_LENGTH = 6
USERNAME_PATTERN = re.compile(r"^[a-z0-9_.\-]{3,64}$")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

_dummy_hash: str | None = None


class PasswordValidationError(ValidationError):
    """Raised when password doesn't meet strength requirements."""


@dataclass
class LoginResult:
    token: AuthToken
    user: User

    def to_dict(self) -> dict:
        return {
            "token": self.token.token,
            "expires_at": self.token.to_dict()["expires_at"],
            "user": self.user.to_dict(),
        }


def validate_password_strength(password: str) -> None:
    if not isinstance(password, str) or len(password) < MIN_PASSWORD_LENGTH:
        raise PasswordValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long"
        )


def _log_rounds() -> int:
    if has_app_context():
        return int(current_app.config.get("BCRYPT_LOG_ROUNDS", 12))
    return 12


def hash_password(password: str) -> str:
    """Validate and hash a password with bcrypt."""
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=_log_rounds())
    hashed = bcrypt.hashpw(password.encode("utf-8"), salt)
    return hashed.decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe bcrypt comparison; malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def _burn_password_check(password: str) -> None:
    """Spend one bcrypt check so unknown usernames cost the same as known ones."""
    global _dummy_hash
    if _dummy_hash is None:
        _dummy_hash = bcrypt.hashpw(b"not-a-real-password", bcrypt.gensalt(rounds=_log_rounds())).decode("utf-8")
    verify_password(password or "", _dummy_hash)


def normalize_username(username: str) -> str:
    return (username or "").strip().lower()


def _validate_theater_binding(role: str, theater_id: int | None, role_id: str | None) -> None:
    if role not in USER_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(USER_ROLES)}")

    if role in THEATER_BOUND_ROLES:
        if theater_id is None:
            raise ValidationError(f"theater_id is required for {role}")
        theater = db.session.get(Theater, theater_id)
        if theater is None:
            raise NotFound("Theater not found")
        if not theater.is_active:
            raise ValidationError("Theater is not active")
    elif theater_id is not None:
        raise ValidationError(f"{role} users cannot be bound to a theater")

    if role_id is not None:
        if role not in THEATER_BOUND_ROLES:
            raise ValidationError("Only theater users can be assigned a theater role")
        exists = db.session.query(Role.id).filter_by(theater_id=theater_id, role_id=role_id).first()
        if exists is None:
            raise UnknownRole(f"Role '{role_id}' does not exist in this theater")


def register_user(
    username: str,
    email: str,
    password: str,
    *,
    role: str = ROLE_CUSTOMER,
    theater_id: int | None = None,
    role_id: str | None = None,
    full_name: str | None = None,
    phone_number: str | None = None,
    permissions: list | None = None,
) -> User:
    """
    Create a user with a bcrypt credential hash.

    Raises:
        ValidationError: bad username/email/password, or theater binding
            inconsistent with the role
        Conflict: username already taken
        UnknownRole: role_id not defined in the theater
    """
    username = normalize_username(username)
    if not USERNAME_PATTERN.match(username):
        raise ValidationError(
            "username must be 3-64 characters of letters, digits, '.', '_' or '-'"
        )
    email = (email or "").strip().lower()
    if not EMAIL_PATTERN.match(email):
        raise ValidationError("A valid email is required")

    # Theater admins default to their theater's built-in admin role
    if role == ROLE_THEATER_ADMIN and role_id is None and theater_id is not None:
        default_role = db.session.query(Role.id).filter_by(theater_id=theater_id, role_id=THEATER_ADMIN_ROLE_ID).first()
        if default_role is not None:
            role_id = THEATER_ADMIN_ROLE_ID

    _validate_theater_binding(role, theater_id, role_id)

    if db.session.query(User.id).filter_by(username=username).first() is not None:
        raise Conflict("Username already exists")

    user = User(
        username=username,
        email=email,
        password_hash=hash_password(password),
        role=role,
        theater_id=theater_id,
        role_id=role_id,
        full_name=full_name,
        phone_number=phone_number,
        permissions=permission_service.normalize_permissions(permissions),
        status=STATUS_ACTIVE,
        login_attempts=0,
    )
    db.session.add(user)
    db.session.commit()
    return user


def login(
    username: str,
    password: str,
    device_info: str | None = None,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> LoginResult:
    """
    Authenticate and issue a session token.

    Order of checks: unknown user, lock, password, account state. A wrong
    password advances the lockout counter.
    """
    deadline = Deadline.from_config()
    username = normalize_username(username)
    if not username or not password:
        raise ValidationError("username and password required")

    user = db.session.query(User).filter_by(username=username).first()
    if user is None:
        _burn_password_check(password)
        permission_service.log_security_event(
            user_id=None,
            event_type="LOGIN_FAILED",
            success=False,
            resource="/api/auth/login",
            action=username,
            reason="Invalid credentials",
            ip_address=ip_address,
            user_agent=user_agent,
        )
        raise InvalidCredentials()

    if login_throttle_service.is_locked(user):
        permission_service.log_security_event(
            user_id=user.id,
            event_type="ACCOUNT_LOCKED",
            success=False,
            resource="/api/auth/login",
            action=username,
            reason="Login attempted while locked",
            ip_address=ip_address,
            user_agent=user_agent,
            theater_id=user.theater_id,
        )
        raise AccountLocked()

    password_ok = verify_password(password, user.password_hash)

    if not password_ok:
        login_throttle_service.register_failed_login(user.id)
        permission_service.log_security_event(
            user_id=user.id,
            event_type="LOGIN_FAILED",
            success=False,
            resource="/api/auth/login",
            action=username,
            reason="Invalid credentials",
            ip_address=ip_address,
            user_agent=user_agent,
            theater_id=user.theater_id,
        )
        # The failure is recorded even when the deadline has passed
        deadline.check("Login")
        raise InvalidCredentials()

    deadline.check("Login")

    if user.status != STATUS_ACTIVE:
        raise Forbidden(f"Account is {user.status}")

    if user.theater_id is not None:
        theater = db.session.get(Theater, user.theater_id)
        if theater is None or not theater.is_active:
            raise Forbidden("Theater is not active")

    login_throttle_service.reset_login_attempts(user)
    user.last_login_at = utcnow()
    db.session.flush()

    token = session_service.issue_token(user, device_info=device_info)
    return LoginResult(token=token, user=user)


def logout(token_value: str) -> bool:
    return session_service.revoke_token(token_value)


def change_password(user: User, current_password: str, new_password: str, *, keep_token: str | None = None) -> int:
    """
    Replace the user's password. Every other token is revoked.

    Returns the number of revoked tokens.
    """
    if not verify_password(current_password or "", user.password_hash):
        raise InvalidCredentials("Current password is incorrect")
    user.password_hash = hash_password(new_password)
    db.session.commit()
    return session_service.revoke_all_user_tokens(user.id, keep_token=keep_token)


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFound("User not found")
    return user


def list_users(*, theater_id: int | None = None, role: str | None = None) -> list[User]:
    query = db.session.query(User)
    if theater_id is not None:
        query = query.filter(User.theater_id == theater_id)
    if role:
        query = query.filter(User.role == role)
    return query.order_by(User.username.asc()).all()


def update_user(
    user: User,
    *,
    role: str | None = None,
    theater_id: int | None = None,
    role_id: str | None = None,
    status: str | None = None,
    email: str | None = None,
    full_name: str | None = None,
    phone_number: str | None = None,
    permissions: list | None = None,
    password: str | None = None,
) -> User:
    """Admin update. Theater binding is revalidated whenever role or theater changes."""
    new_role = role or user.role
    if new_role in THEATER_BOUND_ROLES:
        new_theater_id = theater_id if theater_id is not None else user.theater_id
        if role_id is not None:
            # An empty string clears the assignment
            new_role_id = role_id or None
        elif new_theater_id != user.theater_id:
            new_role_id = None
        else:
            new_role_id = user.role_id
    else:
        new_theater_id = None
        new_role_id = None

    _validate_theater_binding(new_role, new_theater_id, new_role_id)

    user.role = new_role
    user.theater_id = new_theater_id
    user.role_id = new_role_id

    if status is not None:
        if status not in USER_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(USER_STATUSES)}")
        user.status = status
    if email is not None:
        email = email.strip().lower()
        if not EMAIL_PATTERN.match(email):
            raise ValidationError("A valid email is required")
        user.email = email
    if full_name is not None:
        user.full_name = full_name
    if phone_number is not None:
        user.phone_number = phone_number
    if permissions is not None:
        user.permissions = permission_service.normalize_permissions(permissions)
    if password is not None:
        user.password_hash = hash_password(password)

    db.session.commit()

    if user.status != STATUS_ACTIVE or password is not None:
        session_service.revoke_all_user_tokens(user.id)
    return user


def delete_user(user: User) -> None:
    """Hard delete; the user's tokens go with it."""
    db.session.delete(user)
    db.session.commit()


def has_permission(user: User, resource: str, action: str) -> bool:
    return permission_service.has_permission(user, resource, action)


def ensure_super_admin(username: str, email: str, password: str) -> tuple[User, bool]:
    """Create the platform super admin if absent. Returns (user, created)."""
    existing = db.session.query(User).filter_by(username=normalize_username(username)).first()
    if existing is not None:
        if existing.role != ROLE_SUPER_ADMIN:
            raise Conflict("Username already exists with a different role")
        return existing, False
    return register_user(username, email, password, role=ROLE_SUPER_ADMIN), True
