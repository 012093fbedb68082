# Overview: Service-layer operations for permission; encapsulates business logic and database work.

"""
Coarse Resource Permissions and Security Audit Trail

WHY: Users carry a small list of {resource, actions} grants for API areas
that are not page-scoped (e.g. "reports": ["read", "export"]). Page-level
authorization lives in page_access_service.

The security audit trail (security_events) is written from here so that
every denial, failed login and OTP issuance is recorded in one place.
"""

from ..extensions import db
from ..models import SecurityEvent, User
from ..time_utils import utcnow


def log_security_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    theater_id: int | None = None,
) -> SecurityEvent:
    """
    Log security event to audit trail with tenant context.

    event_type examples:
    - LOGIN_FAILED
    - ACCOUNT_LOCKED
    - LOGOUT
    - PAGE_ACCESS_DENIED
    - ROLE_DENIED
    - CROSS_THEATER_ACCESS_DENIED
    - OTP_ISSUED
    """
    event = SecurityEvent(
        user_id=user_id,
        theater_id=theater_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=utcnow(),
    )

    db.session.add(event)
    db.session.commit()

    return event


def has_permission(user: User, resource: str, action: str) -> bool:
    """
    super_admin always passes; otherwise the user's permissions list must
    contain an entry for resource whose actions include action.
    """
    if user.is_super_admin:
        return True
    for entry in user.permissions or []:
        if entry.get("resource") == resource and action in (entry.get("actions") or []):
            return True
    return False


def normalize_permissions(raw) -> list[dict]:
    """Validate and normalize a [{resource, actions}] list from request input."""
    from ..errors import ValidationError

    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError("permissions must be a list")
    normalized = []
    for entry in raw:
        if not isinstance(entry, dict) or not isinstance(entry.get("resource"), str) or not entry["resource"].strip():
            raise ValidationError("Each permission needs a non-empty resource")
        actions = entry.get("actions") or []
        if not isinstance(actions, list) or not all(isinstance(a, str) and a for a in actions):
            raise ValidationError("permission actions must be a list of strings")
        normalized.append({"resource": entry["resource"].strip(), "actions": sorted(set(actions))})
    return normalized
