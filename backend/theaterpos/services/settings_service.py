# Overview: Service-layer operations for settings; encapsulates business logic and database work.

"""
Theater Settings

Values are a tagged variant: {"type": "string"|"number"|"boolean"|"object"|"array",
"value": ...}. encode_value() is the only place that accepts a raw value and
checks it against its tag.

SECURITY: Rows flagged is_system (platform version, maintenance mode) are
never written through the API, whatever the caller's role. Only
process-internal seeders pass system_write=True.
"""

from __future__ import annotations

from typing import Any

from ..errors import Forbidden, NotFound, ValidationError
from ..extensions import db
from ..models import Setting
from ..models.settings import SETTING_CATEGORIES, SETTING_TYPES


# (category, key, type, value, is_public, is_system)
DEFAULT_SETTINGS = [
    ("general", "companyName", "string", "Theater Canteen", True, False),
    ("general", "currency", "string", "INR", True, False),
    ("general", "timezone", "string", "Asia/Kolkata", False, False),
    ("general", "language", "string", "en", True, False),
    ("general", "taxRate", "number", 18, True, False),
    ("general", "serviceChargeRate", "number", 0, True, False),
    ("branding", "primaryColor", "string", "#6B0E9B", True, False),
    ("branding", "secondaryColor", "string", "#F3F4F6", True, False),
    ("branding", "logoUrl", "string", "/logo.png", True, False),
    ("branding", "faviconUrl", "string", "/favicon.ico", True, False),
    ("payment", "acceptCash", "boolean", True, False, False),
    ("payment", "acceptCard", "boolean", True, False, False),
    ("payment", "acceptUPI", "boolean", True, False, False),
    ("payment", "razorpayEnabled", "boolean", False, False, False),
    ("payment", "razorpayKeyId", "string", "", False, False),
    ("notification", "emailEnabled", "boolean", True, False, False),
    ("notification", "smsEnabled", "boolean", False, False, False),
    ("notification", "orderNotifications", "boolean", True, False, False),
    ("notification", "lowStockAlerts", "boolean", True, False, False),
    ("security", "sessionTimeout", "number", 3600, False, False),
    ("security", "maxLoginAttempts", "number", 5, False, False),
    ("security", "lockoutDuration", "number", 7200, False, False),
    ("system", "version", "string", "1.0.0", False, True),
    ("system", "maintenanceMode", "boolean", False, False, True),
]


def infer_type(value: Any) -> str:
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, dict):
        return "object"
    if isinstance(value, list):
        return "array"
    return "string"


def encode_value(value_type: str, value: Any) -> Any:
    """Check value against its tag and return the JSON-storable payload."""
    if value_type not in SETTING_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(SETTING_TYPES)}")
    if value is None:
        return None

    if value_type == "string":
        ok = isinstance(value, str)
    elif value_type == "number":
        ok = isinstance(value, (int, float)) and not isinstance(value, bool)
    elif value_type == "boolean":
        ok = isinstance(value, bool)
    elif value_type == "object":
        ok = isinstance(value, dict)
    else:
        ok = isinstance(value, list)

    if not ok:
        raise ValidationError(f"value does not match type '{value_type}'")
    return value


def decode_setting(setting: Setting) -> dict:
    return {"type": setting.value_type, "value": setting.value}


def _validate_category(category: str) -> None:
    if category not in SETTING_CATEGORIES:
        raise ValidationError(f"category must be one of: {', '.join(SETTING_CATEGORIES)}")


def list_settings(theater_id: int, *, category: str | None = None, public_only: bool = False) -> list[Setting]:
    query = db.session.query(Setting).filter(Setting.theater_id == theater_id)
    if category:
        _validate_category(category)
        query = query.filter(Setting.category == category)
    if public_only:
        query = query.filter(Setting.is_public.is_(True))
    return query.order_by(Setting.category.asc(), Setting.key.asc()).all()


def get_setting(theater_id: int, category: str, key: str) -> Setting:
    setting = db.session.query(Setting).filter_by(theater_id=theater_id, category=category, key=key).first()
    if setting is None:
        raise NotFound(f"Setting {category}.{key} not found")
    return setting


def set_setting(
    theater_id: int,
    category: str,
    key: str,
    value: Any,
    *,
    value_type: str | None = None,
    is_public: bool | None = None,
    description: str | None = None,
    actor_id: int | None = None,
    system_write: bool = False,
    commit: bool = True,
) -> Setting:
    """
    Upsert one setting.

    Raises Forbidden for is_system rows (and the system category) unless
    system_write is set by an internal seeder.
    """
    _validate_category(category)
    key = (key or "").strip()
    if not key:
        raise ValidationError("key is required")

    setting = db.session.query(Setting).filter_by(theater_id=theater_id, category=category, key=key).first()

    if not system_write and ((setting is not None and setting.is_system) or category == "system"):
        raise Forbidden("System settings are read-only")

    value_type = value_type or (setting.value_type if setting is not None else infer_type(value))
    payload = encode_value(value_type, value)

    if setting is None:
        setting = Setting(theater_id=theater_id, category=category, key=key)
        db.session.add(setting)
        setting.is_system = bool(system_write and category == "system")
        setting.is_public = bool(is_public)
    elif is_public is not None:
        setting.is_public = bool(is_public)

    setting.value_type = value_type
    setting.value = payload
    if description is not None:
        setting.description = description
    setting.updated_by = actor_id

    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return setting


def initialize_defaults(theater_id: int, *, commit: bool = True) -> int:
    """
    Seed DEFAULT_SETTINGS for a theater. Existing rows are left untouched.

    Returns number of settings created.
    """
    created = 0
    for category, key, value_type, value, is_public, is_system in DEFAULT_SETTINGS:
        exists = db.session.query(Setting.id).filter_by(theater_id=theater_id, category=category, key=key).first()
        if exists is not None:
            continue
        db.session.add(Setting(
            theater_id=theater_id,
            category=category,
            key=key,
            value_type=value_type,
            value=encode_value(value_type, value),
            is_public=is_public,
            is_system=is_system,
        ))
        created += 1
    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return created


def grouped(settings: list[Setting]) -> dict:
    """{category: {key: {"type", "value"}}} view used by the API."""
    result: dict = {}
    for setting in settings:
        result.setdefault(setting.category, {})[setting.key] = decode_setting(setting)
    return result
