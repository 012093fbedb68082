# Overview: Service-layer operations for page access; encapsulates business logic and database work.

"""
Page Access Matrix

WHY: Every authenticated theater action is gated on a (role, page) cell.
Each theater has one PageAccess row (the page catalog) and any number of
Role rows, each embedding a list of {page, has_access} entries.

INVARIANTS:
- Exactly one PageAccess row per theater (unique theater_id)
- Page identifiers are non-empty and unique within the catalog
- Registering a page adds a has_access=False entry to every role of the
  theater; unregistering removes the entry from every role
- check() fails closed: unknown role, inactive role, unknown page,
  inactive page and missing entry all deny
- Role identifiers are resolved only inside the caller's bound theater

CONCURRENCY: Role and PageAccess rows carry version_id; every mutation is a
compare-and-swap retried by run_with_retry, surfacing Contention when the
retries run out.

Duplicate entries only exist in corrupt data; the first entry in insertion
order wins and a warning is logged.
"""

from __future__ import annotations

import copy

from flask import current_app, has_app_context
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.attributes import flag_modified
from sqlalchemy.orm.exc import StaleDataError

from ..errors import UnknownPage, UnknownRole, ValidationError
from ..extensions import db
from ..models import PageAccess, Role, User
from ..permissions import PageCategory, validate_category
from ..time_utils import to_utc_z, utcnow
from .concurrency import run_with_retry


def _warn(message: str, *args) -> None:
    if has_app_context():
        current_app.logger.warning(message, *args)


def _first_entry(entries: list, page: str, *, where: str) -> dict | None:
    """Return the first entry for page; log a warning when duplicates exist."""
    matches = [entry for entry in entries or [] if entry.get("page") == page]
    if not matches:
        return None
    if len(matches) > 1:
        _warn("Duplicate page entries for %r in %s; using the first", page, where)
    return matches[0]


def _recompute_metadata(doc: PageAccess, actor_id: int | None) -> None:
    entries = doc.page_access_list or []
    active = sum(1 for entry in entries if entry.get("is_active", True))
    doc.total_pages = len(entries)
    doc.active_pages = active
    doc.inactive_pages = len(entries) - active
    doc.last_modified_at = utcnow()
    if actor_id is not None:
        doc.last_modified_by = actor_id
    flag_modified(doc, "page_access_list")


def _build_page_entry(page: str, page_name: str | None, route: str | None, category: str, is_active: bool = True) -> dict:
    page = (page or "").strip() if isinstance(page, str) else ""
    if not page:
        raise ValidationError("page is required")
    page_name = (page_name or page).strip()
    route = (route or f"/{page}").strip()
    if not page_name or not route:
        raise ValidationError("page_name and route must be non-empty")
    if not validate_category(category):
        raise ValidationError(f"Invalid category: {category}")
    return {
        "page": page,
        "page_name": page_name,
        "route": route,
        "category": category,
        "is_active": bool(is_active),
        "added_at": to_utc_z(utcnow()),
    }


def _role_entry(page_entry: dict, has_access: bool) -> dict:
    return {
        "page": page_entry["page"],
        "page_name": page_entry.get("page_name") or page_entry["page"],
        "category": page_entry.get("category"),
        "has_access": bool(has_access),
        "updated_at": to_utc_z(utcnow()),
    }


def get_page_access(theater_id: int) -> PageAccess | None:
    return db.session.query(PageAccess).filter_by(theater_id=theater_id).first()


def ensure_page_access(theater_id: int, pages=()) -> PageAccess:
    """
    Find or create the theater's PageAccess row. Caller commits.

    pages seeds a newly created row with (page, page_name, route, category)
    tuples. A concurrent creator loses on the unique theater_id index with
    IntegrityError; callers retry and then find the winner's row.
    """
    doc = get_page_access(theater_id)
    if doc is not None:
        return doc

    entries = []
    seen = set()
    for page, page_name, route, category in pages:
        if page in seen:
            continue
        seen.add(page)
        entries.append(_build_page_entry(page, page_name, route, category))

    doc = PageAccess(theater_id=theater_id, page_access_list=entries)
    _recompute_metadata(doc, None)
    db.session.add(doc)
    db.session.flush()
    return doc


def get_role(theater_id: int, role_id: str) -> Role:
    role = db.session.query(Role).filter_by(theater_id=theater_id, role_id=role_id).first()
    if role is None:
        raise UnknownRole(f"Role '{role_id}' not found in theater {theater_id}")
    return role


def check(theater_id: int | None, role_id: str | None, page: str) -> bool:
    """hasAccess of the (role, page) cell; every unknown fails closed."""
    if theater_id is None or not role_id or not page:
        return False

    role = db.session.query(Role).filter_by(theater_id=theater_id, role_id=role_id).first()
    if role is None or not role.is_active:
        return False

    doc = get_page_access(theater_id)
    if doc is None:
        return False
    page_entry = _first_entry(doc.page_access_list, page, where=f"theater {theater_id} page list")
    if page_entry is None or not page_entry.get("is_active", True):
        return False

    entry = _first_entry(role.permissions, page, where=f"role {theater_id}/{role_id}")
    return bool(entry and entry.get("has_access") is True)


def check_user(user: User, page: str) -> bool:
    """Page check for an authenticated user. super_admin always passes."""
    if user.is_super_admin:
        return True
    return check(user.theater_id, user.role_id, page)


def set_access(theater_id: int, role_id: str, page: str, has_access: bool, *, actor_id: int | None = None) -> dict:
    """
    Atomically set one (role, page) cell and record updated_at and, when
    given, the acting user as updated_by.

    Raises UnknownRole / UnknownPage; Contention after exhausted retries.
    """
    def _op():
        role = get_role(theater_id, role_id)
        doc = get_page_access(theater_id)
        page_entry = _first_entry(doc.page_access_list, page, where=f"theater {theater_id} page list") if doc else None
        if page_entry is None:
            raise UnknownPage(f"Page '{page}' is not registered for theater {theater_id}")

        now = utcnow()
        entries = copy.deepcopy(role.permissions or [])
        entry = _first_entry(entries, page, where=f"role {theater_id}/{role_id}")
        if entry is None:
            entry = _role_entry(page_entry, False)
            entries.append(entry)
        entry["has_access"] = bool(has_access)
        entry["updated_at"] = to_utc_z(now)
        if actor_id is not None:
            entry["updated_by"] = actor_id

        role.permissions = entries
        role.updated_at = now
        flag_modified(role, "permissions")
        db.session.commit()
        return dict(entry)

    return run_with_retry(_op)


def grant(theater_id: int, role_id: str, page: str, *, actor_id: int | None = None) -> dict:
    return set_access(theater_id, role_id, page, True, actor_id=actor_id)


def revoke(theater_id: int, role_id: str, page: str, *, actor_id: int | None = None) -> dict:
    return set_access(theater_id, role_id, page, False, actor_id=actor_id)


def register_page(
    theater_id: int,
    page: str,
    *,
    page_name: str | None = None,
    route: str | None = None,
    category: str = PageCategory.ADMIN,
    actor_id: int | None = None,
) -> tuple[dict, bool]:
    """
    Add page to the theater's catalog if absent and give every role a
    has_access=False entry for it.

    Returns (page_entry, created).
    """
    candidate = _build_page_entry(page, page_name, route, category)

    def _op():
        doc = ensure_page_access(theater_id)
        entries = copy.deepcopy(doc.page_access_list or [])
        existing = _first_entry(entries, candidate["page"], where=f"theater {theater_id} page list")
        if existing is not None:
            db.session.commit()
            return dict(existing), False

        entries.append(candidate)
        doc.page_access_list = entries
        _recompute_metadata(doc, actor_id)

        for role in db.session.query(Role).filter_by(theater_id=theater_id).all():
            role_entries = copy.deepcopy(role.permissions or [])
            if _first_entry(role_entries, candidate["page"], where=f"role {theater_id}/{role.role_id}") is None:
                role_entries.append(_role_entry(candidate, False))
                role.permissions = role_entries
                role.updated_at = utcnow()
                flag_modified(role, "permissions")

        db.session.commit()
        return dict(candidate), True

    return run_with_retry(_op, retry_on=(OperationalError, StaleDataError, IntegrityError))


def unregister_page(theater_id: int, page: str, *, actor_id: int | None = None) -> int:
    """
    Remove page (every copy) from the catalog and from every role.

    Returns the number of roles that lost an entry.
    """
    def _op():
        doc = get_page_access(theater_id)
        if doc is None or _first_entry(doc.page_access_list, page, where=f"theater {theater_id} page list") is None:
            raise UnknownPage(f"Page '{page}' is not registered for theater {theater_id}")

        doc.page_access_list = [entry for entry in doc.page_access_list if entry.get("page") != page]
        _recompute_metadata(doc, actor_id)

        touched = 0
        for role in db.session.query(Role).filter_by(theater_id=theater_id).all():
            remaining = [entry for entry in role.permissions or [] if entry.get("page") != page]
            if len(remaining) != len(role.permissions or []):
                role.permissions = remaining
                role.updated_at = utcnow()
                flag_modified(role, "permissions")
                touched += 1

        db.session.commit()
        return touched

    return run_with_retry(_op)


def set_page_active(theater_id: int, page: str, is_active: bool, *, actor_id: int | None = None) -> dict:
    """Toggle a catalog page; inactive pages deny every role."""
    def _op():
        doc = get_page_access(theater_id)
        entries = copy.deepcopy(doc.page_access_list or []) if doc else []
        entry = _first_entry(entries, page, where=f"theater {theater_id} page list")
        if entry is None:
            raise UnknownPage(f"Page '{page}' is not registered for theater {theater_id}")
        entry["is_active"] = bool(is_active)
        doc.page_access_list = entries
        _recompute_metadata(doc, actor_id)
        db.session.commit()
        return dict(entry)

    return run_with_retry(_op)


def list_pages(theater_id: int) -> list[dict]:
    doc = get_page_access(theater_id)
    return [dict(entry) for entry in (doc.page_access_list if doc else [])]


def list_accessible(user: User, theater_id: int | None = None) -> list[dict]:
    """
    Pages the user may open.

    super_admin receives every page of the requested theater's catalog.
    Theater users always resolve against their own bound theater, whatever
    theater_id is passed. Customers have no page access.
    """
    if user.is_super_admin:
        if theater_id is None:
            return []
        return list_pages(theater_id)

    if user.theater_id is None or not user.role_id:
        return []

    doc = get_page_access(user.theater_id)
    role = db.session.query(Role).filter_by(theater_id=user.theater_id, role_id=user.role_id).first()
    if doc is None or role is None or not role.is_active:
        return []

    granted = set()
    seen = set()
    for entry in role.permissions or []:
        page = entry.get("page")
        if page in seen:
            continue
        seen.add(page)
        if entry.get("has_access") is True:
            granted.add(page)

    accessible = []
    listed = set()
    for entry in doc.page_access_list or []:
        page = entry.get("page")
        if page in listed:
            continue
        listed.add(page)
        if page in granted and entry.get("is_active", True):
            accessible.append(dict(entry))
    return accessible


def purge_null_pages() -> tuple[int, int]:
    """
    Remove entries with a null/empty page identifier from every catalog and
    role. Returns (page_access_rows_changed, roles_changed).
    """
    def _valid(entry) -> bool:
        return isinstance(entry, dict) and isinstance(entry.get("page"), str) and bool(entry["page"].strip())

    docs_changed = 0
    for doc in db.session.query(PageAccess).all():
        cleaned = [entry for entry in doc.page_access_list or [] if _valid(entry)]
        if len(cleaned) != len(doc.page_access_list or []):
            doc.page_access_list = cleaned
            _recompute_metadata(doc, None)
            docs_changed += 1

    roles_changed = 0
    for role in db.session.query(Role).all():
        cleaned = [entry for entry in role.permissions or [] if _valid(entry)]
        if len(cleaned) != len(role.permissions or []):
            role.permissions = cleaned
            role.updated_at = utcnow()
            flag_modified(role, "permissions")
            roles_changed += 1

    db.session.commit()
    return docs_changed, roles_changed


def role_matrix(theater_id: int) -> list[dict]:
    """Every role of the theater with its permission entries."""
    roles = db.session.query(Role).filter_by(theater_id=theater_id).order_by(Role.id.asc()).all()
    return [
        {
            "role_id": role.role_id,
            "name": role.name,
            "is_active": role.is_active,
            "permissions": [dict(entry) for entry in role.permissions or []],
        }
        for role in roles
    ]
