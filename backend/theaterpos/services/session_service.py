# Overview: Service-layer operations for session; encapsulates business logic and database work.

"""
Session Token Management Service

WHY: Bearer tokens tie every authenticated request to a user and, for
theater roles, to the theater the user is bound to.

SECURITY FEATURES:
- Cryptographically secure random tokens (32 bytes)
- 24-hour absolute lifetime
- At most MAX_TOKENS_PER_USER live tokens per user; the oldest is evicted
- Revocable on logout, password change or user deletion (cascade)
- Inactive/suspended users and deactivated theaters are rejected
"""

import secrets
from dataclasses import dataclass
from datetime import timedelta

from ..errors import InvalidToken
from ..extensions import db
from ..models import AuthToken, User, Theater
from ..models.auth import STATUS_ACTIVE
from ..time_utils import utcnow


TOKEN_LIFETIME = timedelta(hours=24)
MAX_TOKENS_PER_USER = 5


@dataclass
class SessionContext:
    """Authenticated identity returned by validate_token."""
    user: User
    token: AuthToken
    theater_id: int | None


def generate_token() -> str:
    """
    Generate cryptographically secure random token.

    Returns 64-character hex string (32 bytes of entropy).
    """
    return secrets.token_hex(32)


def issue_token(user: User, device_info: str | None = None) -> AuthToken:
    """
    Append a fresh token to the user's token list and evict the oldest
    tokens beyond MAX_TOKENS_PER_USER. Commits.
    """
    now = utcnow()
    token = AuthToken(
        user_id=user.id,
        token=generate_token(),
        created_at=now,
        expires_at=now + TOKEN_LIFETIME,
        device_info=str(device_info)[:512] if device_info else None,
    )
    db.session.add(token)
    db.session.flush()

    stale_ids = [
        row.id
        for row in db.session.query(AuthToken.id)
        .filter(AuthToken.user_id == user.id)
        .order_by(AuthToken.id.desc())
        .offset(MAX_TOKENS_PER_USER)
        .all()
    ]
    if stale_ids:
        db.session.query(AuthToken).filter(AuthToken.id.in_(stale_ids)).delete(synchronize_session=False)

    db.session.commit()
    return token


def validate_token(token_value: str) -> SessionContext:
    """
    Resolve a bearer token to its owning user.

    Raises InvalidToken when the token is unknown or expired, when the user
    is not active, or when the user's theater has been deactivated.
    """
    if not token_value:
        raise InvalidToken()

    token = db.session.query(AuthToken).filter_by(token=token_value).first()
    if token is None or token.expires_at <= utcnow():
        raise InvalidToken()

    user = token.user
    if user is None or user.status != STATUS_ACTIVE:
        raise InvalidToken()

    if user.theater_id is not None:
        theater = db.session.get(Theater, user.theater_id)
        if theater is None or not theater.is_active:
            raise InvalidToken()

    return SessionContext(user=user, token=token, theater_id=user.theater_id)


def revoke_token(token_value: str) -> bool:
    """Remove a token. Returns False when it was not found."""
    deleted = db.session.query(AuthToken).filter_by(token=token_value).delete(synchronize_session=False)
    db.session.commit()
    return deleted > 0


def revoke_all_user_tokens(user_id: int, keep_token: str | None = None) -> int:
    """
    Revoke every token of a user, optionally keeping the caller's own.

    WHY: Password changes force re-authentication on other devices.
    """
    query = db.session.query(AuthToken).filter(AuthToken.user_id == user_id)
    if keep_token:
        query = query.filter(AuthToken.token != keep_token)
    deleted = query.delete(synchronize_session=False)
    db.session.commit()
    return deleted


def list_user_tokens(user_id: int) -> list[AuthToken]:
    return (
        db.session.query(AuthToken)
        .filter(AuthToken.user_id == user_id)
        .order_by(AuthToken.id.asc())
        .all()
    )


def cleanup_expired_tokens() -> int:
    """Delete expired tokens. Returns count deleted."""
    deleted = db.session.query(AuthToken).filter(
        AuthToken.expires_at <= utcnow()
    ).delete(synchronize_session=False)
    db.session.commit()
    return deleted
