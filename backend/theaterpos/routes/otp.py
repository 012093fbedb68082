# Overview: Flask API routes for OTP issue and verification; parses input and returns JSON responses.

"""
OTP API

Both endpoints are public. Issuance is rate limited per phone number.
Verification of the exactly-once purposes (order, order_verification)
consumes the record: a second verify of the same code fails.
"""

from flask import Blueprint, current_app, request

from ..models.otp import CONSUMING_PURPOSES
from ..responses import ok
from ..services import otp_service
from ..validation import get_json_body, parse_int, require_fields


otp_bp = Blueprint("otp", __name__, url_prefix="/api/otp")


@otp_bp.post("/issue")
def issue_route():
    """
    Body: {phoneNumber, purpose?, ttlSeconds?}

    The code itself is only returned in demo mode.
    """
    data = get_json_body()
    require_fields(data, "phoneNumber")
    ttl = data.get("ttlSeconds")
    issued = otp_service.issue(
        data["phoneNumber"],
        data.get("purpose") or "verification",
        parse_int(ttl, "ttlSeconds", minimum=30, maximum=3600) if ttl is not None else None,
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent"),
    )
    return ok(
        issued.to_dict(include_code=bool(current_app.config.get("OTP_DEMO_MODE"))),
        status=201,
        message="OTP sent",
    )


@otp_bp.post("/verify")
def verify_route():
    """Body: {phoneNumber, purpose?, code}"""
    data = get_json_body()
    require_fields(data, "phoneNumber", "code")
    purpose = data.get("purpose") or "verification"
    code = str(data["code"])

    if purpose in CONSUMING_PURPOSES:
        otp_service.consume(data["phoneNumber"], purpose, code)
        return ok({"verified": True, "consumed": True, "purpose": purpose}, message="OTP verified")

    record = otp_service.verify(data["phoneNumber"], purpose, code)
    return ok({"verified": record.verified, "consumed": False, "purpose": purpose}, message="OTP verified")
