from __future__ import annotations

from datetime import date, datetime
from typing import Any

from flask import request

from .errors import ValidationError
from .time_utils import parse_iso_date, parse_iso_datetime


def get_json_body() -> dict:
    """Return the request JSON object, or raise ValidationError for anything else."""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def require_fields(data: dict, *fields: str) -> None:
    missing = [f for f in fields if data.get(f) in (None, "")]
    if missing:
        raise ValidationError(f"Missing required field(s): {', '.join(missing)}")


def parse_int(value: Any, field: str, *, minimum: int | None = None, maximum: int | None = None) -> int:
    """
    Strict integer parsing for request input.

    Rejects bools, floats with a fractional part and non-numeric strings.
    """
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        parsed = value
    elif isinstance(value, float):
        if not value.is_integer():
            raise ValidationError(f"{field} must be an integer")
        parsed = int(value)
    elif isinstance(value, str):
        stripped = value.strip()
        if not stripped.lstrip("-").isdigit():
            raise ValidationError(f"{field} must be an integer")
        parsed = int(stripped)
    else:
        raise ValidationError(f"{field} must be an integer")

    if minimum is not None and parsed < minimum:
        raise ValidationError(f"{field} must be >= {minimum}")
    if maximum is not None and parsed > maximum:
        raise ValidationError(f"{field} must be <= {maximum}")
    return parsed


def parse_optional_float(value: Any, field: str) -> float | None:
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        parsed = float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{field} must be a number") from exc
    if parsed < 0:
        raise ValidationError(f"{field} must be >= 0")
    return parsed


def parse_date_field(value: Any, field: str) -> date:
    try:
        parsed = parse_iso_date(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{field} must be an ISO-8601 date") from exc
    if parsed is None:
        raise ValidationError(f"{field} is required")
    return parsed


def parse_optional_datetime(value: Any, field: str) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime(value.year, value.month, value.day)
    try:
        return parse_iso_datetime(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{field} must be an ISO-8601 datetime") from exc
