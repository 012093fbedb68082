# Overview: Flask API routes for system health and version; returns JSON responses.

# backend/theaterpos/routes/system.py
"""
System health and version endpoints.

Health checks report datastore connectivity plus the state of the session
and OTP stores, so an operator can tell a dead database from a backlog of
expired rows the reapers have not yet removed.
"""

import sys
import time

from flask import Blueprint, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import AuthToken, Otp, Role, Theater, User
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)

API_VERSION = "1.0.0"


def _elapsed_ms(start_time: float) -> float:
    return round((time.time() - start_time) * 1000, 2)


def check_database_health() -> dict:
    """Check database connectivity and basic queries."""
    start_time = time.time()
    try:
        details = {
            "theaters": db.session.query(Theater).count(),
            "users": db.session.query(User).count(),
            "roles": db.session.query(Role).count(),
        }
        return {"status": "healthy", "latency_ms": _elapsed_ms(start_time), "details": details}
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Database health check failed")
        return {"status": "unhealthy", "latency_ms": _elapsed_ms(start_time), "error": "Database error"}


def check_session_store_health() -> dict:
    """Live tokens and expired tokens still awaiting cleanup."""
    start_time = time.time()
    try:
        now = utcnow()
        active = db.session.query(AuthToken).filter(AuthToken.expires_at > now).count()
        expired = db.session.query(AuthToken).filter(AuthToken.expires_at <= now).count()
        return {
            "status": "healthy",
            "latency_ms": _elapsed_ms(start_time),
            "details": {"active_tokens": active, "expired_pending_cleanup": expired},
        }
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Session store health check failed")
        return {"status": "unhealthy", "latency_ms": _elapsed_ms(start_time), "error": "Session store error"}


def check_otp_store_health() -> dict:
    start_time = time.time()
    try:
        expired = db.session.query(Otp).filter(Otp.expires_at <= utcnow()).count()
        status = "healthy"
        result = {"details": {"expired_pending_reap": expired}}
        # A large backlog means the reaper is not running
        if expired > 1000:
            status = "degraded"
            result["warning"] = "Expired OTP backlog; check the reaper"
        return {"status": status, "latency_ms": _elapsed_ms(start_time), **result}
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("OTP store health check failed")
        return {"status": "unhealthy", "latency_ms": _elapsed_ms(start_time), "error": "OTP store error"}


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: healthy or degraded
    - 503: one or more checks unhealthy
    """
    start_time = time.time()

    checks = {
        "database": check_database_health(),
        "session_store": check_session_store_health(),
        "otp_store": check_otp_store_health(),
    }

    statuses = [check["status"] for check in checks.values()]
    if "unhealthy" in statuses:
        overall_status, http_status = "unhealthy", 503
    elif "degraded" in statuses:
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    response = {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": _elapsed_ms(start_time),
        "checks": checks,
    }
    return response, http_status


@system_bp.get("/version")
def version():
    """Non-sensitive deployment information."""
    return {
        "api_version": API_VERSION,
        "environment": "development" if current_app.debug else "production",
        "python_version": sys.version.split()[0],
        "server_time": to_utc_z(utcnow()),
    }
