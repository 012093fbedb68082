# Overview: Flask API routes for theater settings; parses input and returns JSON responses.

from flask import Blueprint, g, request

from ..decorators import require_auth, require_role, require_theater_member
from ..models.auth import ROLE_SUPER_ADMIN, ROLE_THEATER_ADMIN
from ..responses import ok
from ..services import settings_service, theater_service
from ..validation import get_json_body


settings_bp = Blueprint("settings", __name__, url_prefix="/api/settings")


@settings_bp.get("/<int:theater_id>")
@require_auth
@require_theater_member
def get_settings_route(theater_id: int):
    settings = settings_service.list_settings(theater_id, category=request.args.get("category"))
    return ok(settings_service.grouped(settings))


@settings_bp.get("/<int:theater_id>/public")
def get_public_settings_route(theater_id: int):
    """No auth: branding and storefront values flagged isPublic."""
    theater_service.get_theater(theater_id)
    settings = settings_service.list_settings(theater_id, public_only=True)
    return ok(settings_service.grouped(settings))


@settings_bp.put("/<int:theater_id>/<category>/<key>")
@require_auth
@require_role(ROLE_SUPER_ADMIN, ROLE_THEATER_ADMIN)
@require_theater_member
def put_setting_route(theater_id: int, category: str, key: str):
    """
    Body: {value, type?, isPublic?, description?}

    System settings are read-only for every caller.
    """
    data = get_json_body()
    theater_service.get_theater(theater_id)
    setting = settings_service.set_setting(
        theater_id,
        category,
        key,
        data.get("value"),
        value_type=data.get("type"),
        is_public=data.get("isPublic"),
        description=data.get("description"),
        actor_id=g.current_user.id,
    )
    return ok(setting.to_dict(), message="Setting saved")
