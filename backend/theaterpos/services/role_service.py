# Overview: Service-layer operations for theater roles; encapsulates business logic and database work.

from __future__ import annotations

from sqlalchemy.orm.attributes import flag_modified

from ..errors import Conflict, Forbidden, UnknownPage, ValidationError
from ..extensions import db
from ..models import Role, User
from ..permissions import ALL_PAGES, normalize_role_name, role_slug
from ..time_utils import to_utc_z, utcnow
from .concurrency import run_with_retry
from .page_access_service import get_page_access, get_role


def list_roles(theater_id: int, *, include_inactive: bool = True) -> list[Role]:
    query = db.session.query(Role).filter(Role.theater_id == theater_id)
    if not include_inactive:
        query = query.filter(Role.is_active.is_(True))
    return query.order_by(Role.id.asc()).all()


def _unique_role_id(theater_id: int, base: str) -> str:
    base = base or "role"
    candidate = base
    suffix = 2
    while db.session.query(Role.id).filter_by(theater_id=theater_id, role_id=candidate).first() is not None:
        candidate = f"{base[:60]}-{suffix}"
        suffix += 1
    return candidate


def create_role(
    theater_id: int,
    name: str,
    *,
    description: str | None = None,
    role_id: str | None = None,
    granted_pages=(),
    is_default: bool = False,
    can_delete: bool = True,
    commit: bool = True,
) -> Role:
    """
    Create a role with one permission entry per registered page.

    granted_pages is a collection of page identifiers with has_access=True,
    or ALL_PAGES. Every other page starts denied.
    """
    name = " ".join((name or "").split())
    if not name:
        raise ValidationError("Role name is required")
    if len(name) > 100:
        raise ValidationError("Role name must be at most 100 characters")

    normalized = normalize_role_name(name)
    if db.session.query(Role.id).filter_by(theater_id=theater_id, normalized_name=normalized).first() is not None:
        raise Conflict(f"Role '{name}' already exists in this theater")

    if role_id:
        if db.session.query(Role.id).filter_by(theater_id=theater_id, role_id=role_id).first() is not None:
            raise Conflict(f"Role id '{role_id}' already exists in this theater")
    else:
        role_id = _unique_role_id(theater_id, role_slug(name))

    now = utcnow()
    doc = get_page_access(theater_id)
    permissions = []
    seen = set()
    for entry in (doc.page_access_list if doc else []):
        page = entry.get("page")
        if page in seen:
            continue
        seen.add(page)
        permissions.append({
            "page": page,
            "page_name": entry.get("page_name") or page,
            "category": entry.get("category"),
            "has_access": granted_pages == ALL_PAGES or page in granted_pages,
            "updated_at": to_utc_z(now),
        })

    role = Role(
        theater_id=theater_id,
        role_id=role_id,
        name=name,
        normalized_name=normalized,
        description=description,
        permissions=permissions,
        is_default=is_default,
        can_delete=can_delete,
        is_active=True,
        updated_at=now,
    )
    db.session.add(role)
    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return role


def update_role(
    theater_id: int,
    role_id: str,
    *,
    name: str | None = None,
    description: str | None = None,
    is_active: bool | None = None,
) -> Role:
    def _op():
        role = get_role(theater_id, role_id)
        if name is not None:
            new_name = " ".join(name.split())
            if not new_name:
                raise ValidationError("Role name is required")
            normalized = normalize_role_name(new_name)
            clash = db.session.query(Role.id).filter(
                Role.theater_id == theater_id,
                Role.normalized_name == normalized,
                Role.id != role.id,
            ).first()
            if clash is not None:
                raise Conflict(f"Role '{new_name}' already exists in this theater")
            role.name = new_name
            role.normalized_name = normalized
        if description is not None:
            role.description = description
        if is_active is not None:
            if role.is_default and not is_active:
                raise Forbidden("Default roles cannot be deactivated")
            role.is_active = bool(is_active)
        role.updated_at = utcnow()
        db.session.commit()
        return role

    return run_with_retry(_op)


def delete_role(theater_id: int, role_id: str) -> None:
    role = get_role(theater_id, role_id)
    if role.is_default or not role.can_delete:
        raise Forbidden("Default roles cannot be deleted")
    assigned = db.session.query(User.id).filter_by(theater_id=theater_id, role_id=role_id).count()
    if assigned:
        raise Conflict(f"Role is assigned to {assigned} user(s)")
    db.session.delete(role)
    db.session.commit()


def replace_permissions(theater_id: int, role_id: str, grants: dict) -> Role:
    """
    Bulk-set has_access for several pages of one role in a single CAS write.

    grants maps page identifier to bool; unknown pages are rejected.
    """
    def _op():
        role = get_role(theater_id, role_id)
        doc = get_page_access(theater_id)
        known = {entry.get("page"): entry for entry in (doc.page_access_list if doc else [])}
        unknown = [page for page in grants if page not in known]
        if unknown:
            raise UnknownPage(f"Unknown page(s): {', '.join(sorted(unknown))}")

        now = utcnow()
        entries = [dict(entry) for entry in role.permissions or []]
        seen = set()
        for entry in entries:
            page = entry.get("page")
            if page in grants and page not in seen:
                entry["has_access"] = bool(grants[page])
                entry["updated_at"] = to_utc_z(now)
            seen.add(page)
        for page, value in grants.items():
            if page not in seen:
                entries.append({
                    "page": page,
                    "page_name": known[page].get("page_name") or page,
                    "category": known[page].get("category"),
                    "has_access": bool(value),
                    "updated_at": to_utc_z(now),
                })
        role.permissions = entries
        role.updated_at = now
        flag_modified(role, "permissions")
        db.session.commit()
        return role

    return run_with_retry(_op)
