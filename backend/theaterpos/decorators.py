# Overview: Request and permission decorators for API routes.

from functools import wraps
from flask import request, g

from .errors import Forbidden, InvalidToken, NotFound
from .extensions import db
from .models import Product
from .services import session_service, permission_service, page_access_service


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user')


def _client_context() -> dict:
    return {
        "ip_address": request.remote_addr,
        "user_agent": request.headers.get("User-Agent"),
    }


def bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require authentication and establish tenant context.

    MULTI-TENANT: Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.theater_id: The user's bound theater (None for super_admin and customers)
    - g.session_token: The raw bearer token of this request

    SECURITY: Raises InvalidToken (401) if:
    - No Authorization header
    - Unknown or expired token
    - User not active
    - User's theater deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token()
        if not token:
            raise InvalidToken("Authentication required")

        context = session_service.validate_token(token)

        g.current_user = context.user
        g.theater_id = context.theater_id
        g.session_token = token

        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles):
    """Require the authenticated user's role to be one of roles."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                raise InvalidToken("Authentication required")

            user = g.current_user
            if user.role not in roles:
                permission_service.log_security_event(
                    user_id=user.id,
                    event_type="ROLE_DENIED",
                    success=False,
                    resource=request.path,
                    action=request.method,
                    reason=f"Requires one of: {', '.join(roles)}",
                    theater_id=user.theater_id,
                    **_client_context(),
                )
                raise Forbidden(f"Requires one of: {', '.join(roles)}")

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def ensure_theater_member(theater_id: int) -> None:
    """
    super_admin may act on any theater; everyone else only on the theater
    they are bound to.
    """
    user = g.current_user
    if user.is_super_admin:
        return
    if user.theater_id is None or user.theater_id != theater_id:
        permission_service.log_security_event(
            user_id=user.id,
            event_type="CROSS_THEATER_ACCESS_DENIED",
            success=False,
            resource=request.path,
            action=request.method,
            reason=f"User bound to theater {user.theater_id} requested theater {theater_id}",
            theater_id=user.theater_id,
            **_client_context(),
        )
        raise Forbidden("Access to this theater is not allowed")


def require_theater_member(f):
    """Enforce tenant isolation on routes carrying a theater_id URL argument."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _is_authenticated():
            raise InvalidToken("Authentication required")
        ensure_theater_member(kwargs["theater_id"])
        return f(*args, **kwargs)

    return decorated_function


def require_product_member(f):
    """Tenant isolation for routes keyed by product_id (stock history)."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not _is_authenticated():
            raise InvalidToken("Authentication required")
        product = db.session.get(Product, kwargs["product_id"])
        if product is None:
            # Do not reveal products of other theaters
            if g.current_user.is_super_admin:
                raise NotFound("Product not found")
            raise Forbidden("Access to this product is not allowed")
        ensure_theater_member(product.theater_id)
        g.product = product
        return f(*args, **kwargs)

    return decorated_function


def require_page_access(page: str):
    """
    Require the caller's theater role to grant page.

    Evaluated against the user's bound theater only; super_admin passes.
    Denials are recorded as PAGE_ACCESS_DENIED security events.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                raise InvalidToken("Authentication required")

            user = g.current_user
            if not page_access_service.check_user(user, page):
                permission_service.log_security_event(
                    user_id=user.id,
                    event_type="PAGE_ACCESS_DENIED",
                    success=False,
                    resource=request.path,
                    action=page,
                    reason=f"Role '{user.role_id}' has no access to {page}",
                    theater_id=user.theater_id,
                    **_client_context(),
                )
                raise Forbidden(f"Access to {page} is not allowed")

            return f(*args, **kwargs)

        return decorated_function
    return decorator
