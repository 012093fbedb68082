# Overview: Service-layer operations for OTP verification; encapsulates business logic and database work.

"""
One-Time Password Service

WHY: Customers prove control of a phone number before ordering, viewing
order history or unlocking favorites. Codes are short-lived, attempt-capped
and scoped to a purpose.

LIFECYCLE:
- issue(): any unverified code for (phone, purpose) is replaced
- verify(): expiry, then a conditional UPDATE that claims one attempt under
  the cap, then comparison; a code verifies at most once and a mismatch is
  committed before the error is raised so the attempt is never lost
- consume(): verify-and-delete for exactly-once flows; a conditional DELETE
  guarantees only one caller succeeds
- expired rows are removed by the reaper (maintenance_service)

SECURITY:
- Codes come from the secrets module and are compared in constant time
- Issuance is rate limited per phone using OTP_ISSUED security events
- Codes are never returned unless OTP_DEMO_MODE is on
"""

from __future__ import annotations

import hmac
import re
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta

from flask import current_app, has_app_context
from sqlalchemy import and_, delete, update

from ..errors import NotFound, OtpExhausted, OtpExpired, OtpMismatch, RateLimited, ValidationError
from ..extensions import db
from ..models import Otp, SecurityEvent
from ..models.otp import OTP_PURPOSES
from ..time_utils import to_utc_z, utcnow
from . import permission_service
from .concurrency import Deadline


DEFAULT_OTP_LENGTH = 6
DEFAULT_TTL_SECONDS = 600
DEFAULT_MAX_ATTEMPTS = 5

_PHONE_PATTERN = re.compile(r"^\+?\d{10,15}$")


@dataclass(frozen=True)
class IssuedOtp:
    otp_id: str
    phone_number: str
    purpose: str
    code: str
    expires_at: datetime

    def to_dict(self, *, include_code: bool = False) -> dict:
        data = {
            "otp_id": self.otp_id,
            "phone_number": self.phone_number,
            "purpose": self.purpose,
            "expires_at": to_utc_z(self.expires_at),
        }
        if include_code:
            data["code"] = self.code
        return data


def _config(name: str, default):
    if has_app_context():
        return current_app.config.get(name, default)
    return default


def normalize_phone(phone: str) -> str:
    """Strip spaces, dashes, dots and parentheses; keep a leading '+'."""
    cleaned = re.sub(r"[\s\-().]", "", str(phone or ""))
    if not _PHONE_PATTERN.match(cleaned):
        raise ValidationError("A valid phone number is required")
    return cleaned


def _validate_purpose(purpose: str) -> str:
    if purpose not in OTP_PURPOSES:
        raise ValidationError(f"purpose must be one of: {', '.join(OTP_PURPOSES)}")
    return purpose


def generate_code(length: int) -> str:
    return "".join(secrets.choice("0123456789") for _ in range(length))


def _enforce_issue_rate_limit(phone: str, now: datetime) -> None:
    limit = int(_config("OTP_ISSUE_LIMIT", 5))
    window = timedelta(seconds=int(_config("OTP_ISSUE_WINDOW_SECONDS", 900)))
    if limit <= 0:
        return
    recent = db.session.query(SecurityEvent).filter(
        SecurityEvent.event_type == "OTP_ISSUED",
        SecurityEvent.action == phone,
        SecurityEvent.occurred_at >= now - window,
    ).count()
    if recent >= limit:
        raise RateLimited("Too many OTP requests for this phone number. Try again later.")


def _deliver(issued: IssuedOtp) -> None:
    sender = _config("OTP_SENDER", None)
    if sender is not None:
        sender(issued.phone_number, issued.code, issued.purpose)
    elif has_app_context() and not current_app.config.get("OTP_DEMO_MODE"):
        current_app.logger.warning(
            "SMS delivery is not configured; OTP %s for %s was not sent", issued.otp_id, issued.purpose
        )


def issue(
    phone: str,
    purpose: str = "verification",
    ttl: int | timedelta | None = None,
    *,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> IssuedOtp:
    """
    Create a fresh code for (phone, purpose).

    ttl is seconds or a timedelta; defaults to OTP_TTL_SECONDS.
    """
    phone = normalize_phone(phone)
    purpose = _validate_purpose(purpose)

    if ttl is None:
        ttl = timedelta(seconds=int(_config("OTP_TTL_SECONDS", DEFAULT_TTL_SECONDS)))
    elif not isinstance(ttl, timedelta):
        ttl = timedelta(seconds=int(ttl))
    if ttl.total_seconds() <= 0:
        raise ValidationError("ttl must be positive")

    now = utcnow()
    _enforce_issue_rate_limit(phone, now)

    db.session.execute(
        delete(Otp).where(
            Otp.phone_number == phone,
            Otp.purpose == purpose,
            Otp.verified.is_(False),
        )
    )

    record = Otp(
        public_id=secrets.token_hex(12),
        phone_number=phone,
        code=generate_code(int(_config("OTP_LENGTH", DEFAULT_OTP_LENGTH))),
        purpose=purpose,
        attempts=0,
        verified=False,
        created_at=now,
        expires_at=now + ttl,
    )
    db.session.add(record)
    db.session.commit()

    issued = IssuedOtp(
        otp_id=record.public_id,
        phone_number=record.phone_number,
        purpose=record.purpose,
        code=record.code,
        expires_at=record.expires_at,
    )

    permission_service.log_security_event(
        user_id=None,
        event_type="OTP_ISSUED",
        success=True,
        resource="/api/otp/issue",
        action=phone,
        reason=purpose,
        ip_address=ip_address,
        user_agent=user_agent,
    )

    _deliver(issued)
    return issued


def _latest_unverified(phone: str, purpose: str) -> Otp | None:
    return (
        db.session.query(Otp)
        .filter(Otp.phone_number == phone, Otp.purpose == purpose, Otp.verified.is_(False))
        .order_by(Otp.created_at.desc(), Otp.id.desc())
        .first()
    )


def _claim_attempt(record_id: int, max_attempts: int) -> None:
    """
    Reserve one comparison against the cap with a conditional UPDATE.

    Concurrent guesses cannot push attempts past max_attempts: once the cap
    is reached the UPDATE matches no row.
    """
    claimed = db.session.execute(
        update(Otp)
        .where(Otp.id == record_id, Otp.verified.is_(False), Otp.attempts < max_attempts)
        .values(attempts=Otp.attempts + 1)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    if claimed.rowcount == 1:
        return

    verified = db.session.query(Otp.verified).filter(Otp.id == record_id).scalar()
    if verified is None or verified:
        raise NotFound("No pending OTP found for this phone number")
    raise OtpExhausted()


def verify(phone: str, purpose: str, code: str) -> Otp:
    """
    Check code against the newest unverified record for (phone, purpose).

    A code verifies at most once; the verified record then stays until its
    TTL only so that consume() can find it. Each comparison claims an attempt
    first and a match hands it back, so only mismatches count.

    Raises NotFound, OtpExpired, OtpExhausted or OtpMismatch, in that order.
    """
    deadline = Deadline.from_config()
    phone = normalize_phone(phone)
    purpose = _validate_purpose(purpose)
    code = str(code or "").strip()
    if not code:
        raise ValidationError("code is required")

    record = _latest_unverified(phone, purpose)
    if record is None:
        raise NotFound("No pending OTP found for this phone number")

    now = utcnow()
    if record.expires_at <= now:
        raise OtpExpired()

    record_id = record.id
    expected = record.code
    _claim_attempt(record_id, int(_config("OTP_MAX_ATTEMPTS", DEFAULT_MAX_ATTEMPTS)))

    if not hmac.compare_digest(expected.encode("utf-8"), code.encode("utf-8")):
        deadline.check("OTP verification")
        raise OtpMismatch()

    deadline.check("OTP verification")
    won = db.session.execute(
        update(Otp)
        .where(Otp.id == record_id, Otp.verified.is_(False))
        .values(verified=True, attempts=Otp.attempts - 1)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    if won.rowcount == 0:
        raise NotFound("No pending OTP found for this phone number")
    return db.session.get(Otp, record_id, populate_existing=True)


def consume(phone: str, purpose: str, code: str | None = None) -> bool:
    """
    Delete a verified, unexpired record for (phone, purpose) exactly once.

    When code is given it is verified first. Raises NotFound when there is
    nothing to consume (never verified, expired, or already consumed).
    """
    if code is not None:
        verify(phone, purpose, code)
    phone = normalize_phone(phone)
    purpose = _validate_purpose(purpose)

    result = db.session.execute(
        delete(Otp)
        .where(
            and_(
                Otp.phone_number == phone,
                Otp.purpose == purpose,
                Otp.verified.is_(True),
                Otp.expires_at > utcnow(),
            )
        )
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    if result.rowcount == 0:
        raise NotFound("No verified OTP to consume")
    return True


def purge_expired(now: datetime | None = None) -> int:
    """Delete every record whose expires_at has passed."""
    now = now or utcnow()
    result = db.session.execute(
        delete(Otp).where(Otp.expires_at <= now).execution_options(synchronize_session=False)
    )
    db.session.commit()
    return result.rowcount
