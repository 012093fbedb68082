# Overview: Error taxonomy shared by services and routes, plus the JSON error handlers.

"""
Service Error Taxonomy

Every service raises a ServiceError subclass; routes never build error
responses by hand. The handler registered here renders each error as the
standard envelope {"success": false, "error": ..., "code": ...}.

SECURITY NOTES:
- InvalidCredentials carries one message for unknown usernames and wrong
  passwords alike.
- AccountLocked never reports how long the lock lasts.
- Anything that is not a ServiceError is logged with its stack and returned
  as an opaque 500.
"""

from __future__ import annotations

from flask import current_app, jsonify
from sqlalchemy.exc import IntegrityError
from werkzeug.exceptions import HTTPException

from .extensions import db


class ServiceError(Exception):
    """Base class for errors that are safe to return to the caller."""
    status_code = 400
    default_message = "Request failed"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    @property
    def code(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict:
        return {"success": False, "error": self.message, "code": self.code}


class InvalidCredentials(ServiceError):
    status_code = 401
    default_message = "Invalid username or password"


class AccountLocked(ServiceError):
    status_code = 429
    default_message = "Account is temporarily locked. Try again later."


class InvalidToken(ServiceError):
    status_code = 401
    default_message = "Invalid or expired token"


class Forbidden(ServiceError):
    status_code = 403
    default_message = "Access denied"


class NotFound(ServiceError):
    status_code = 404
    default_message = "Not found"


class UnknownRole(NotFound):
    default_message = "Role not found"


class UnknownPage(NotFound):
    default_message = "Page not found"


class ValidationError(ServiceError):
    status_code = 400
    default_message = "Invalid request"


class OtpMismatch(ServiceError):
    status_code = 400
    default_message = "Invalid OTP"


class OtpExpired(ServiceError):
    status_code = 410
    default_message = "OTP has expired"


class OtpExhausted(ServiceError):
    status_code = 429
    default_message = "Too many OTP attempts"


class RateLimited(ServiceError):
    status_code = 429
    default_message = "Too many requests"


class Conflict(ServiceError):
    status_code = 409
    default_message = "Conflict"


class InsufficientStock(Conflict):
    default_message = "Insufficient stock"


class Contention(Conflict):
    default_message = "Concurrent update conflict, please retry"


class Timeout(ServiceError):
    status_code = 504
    default_message = "Operation timed out"


class Internal(ServiceError):
    status_code = 500
    default_message = "Internal server error"


def register_error_handlers(app) -> None:
    @app.errorhandler(ServiceError)
    def handle_service_error(exc: ServiceError):
        db.session.rollback()
        if isinstance(exc, Internal):
            current_app.logger.exception("Internal error")
        return jsonify(exc.to_dict()), exc.status_code

    @app.errorhandler(IntegrityError)
    def handle_integrity_error(exc: IntegrityError):
        db.session.rollback()
        current_app.logger.warning("Unique constraint violation: %s", exc.orig)
        return jsonify(Conflict("Resource already exists").to_dict()), 409

    @app.errorhandler(HTTPException)
    def handle_http_error(exc: HTTPException):
        return jsonify({"success": False, "error": exc.description, "code": exc.name}), exc.code

    @app.errorhandler(Exception)
    def handle_unexpected_error(exc: Exception):
        db.session.rollback()
        current_app.logger.exception("Unhandled error")
        return jsonify(Internal().to_dict()), 500
