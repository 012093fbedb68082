# Overview: Service-layer operations for theaters; encapsulates business logic and database work.

"""
Theater Provisioning

WHY: A theater is only usable once its PageAccess catalog, its default
roles and its default settings exist. provision_theater() creates all of
them in one transaction so a half-provisioned tenant is never visible.
"""

from __future__ import annotations

from ..errors import Conflict, NotFound, ValidationError
from ..extensions import db
from ..models import Product, Theater
from ..permissions import DEFAULT_PAGES, DEFAULT_ROLES
from . import page_access_service, role_service, settings_service


def get_theater(theater_id: int) -> Theater:
    theater = db.session.get(Theater, theater_id)
    if theater is None:
        raise NotFound("Theater not found")
    return theater


def list_theaters(*, include_inactive: bool = True) -> list[Theater]:
    query = db.session.query(Theater)
    if not include_inactive:
        query = query.filter(Theater.is_active.is_(True))
    return query.order_by(Theater.id.asc()).all()


def provision_theater(name: str, code: str | None = None) -> Theater:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Theater name is required")
    code = (code or "").strip().upper() or None
    if code and db.session.query(Theater.id).filter_by(code=code).first() is not None:
        raise Conflict(f"Theater code '{code}' already exists")

    theater = Theater(name=name, code=code, is_active=True)
    db.session.add(theater)
    db.session.flush()

    ensure_defaults(theater.id)
    db.session.commit()
    return theater


def ensure_defaults(theater_id: int) -> dict:
    """
    Idempotently create the catalog, default roles and default settings.
    Caller commits. Returns counts of what was created.
    """
    created = {"page_access": 0, "roles": 0, "settings": 0}

    if page_access_service.get_page_access(theater_id) is None:
        page_access_service.ensure_page_access(theater_id, DEFAULT_PAGES)
        created["page_access"] = 1

    existing_role_ids = {role.role_id for role in role_service.list_roles(theater_id)}
    for role_id, name, description, granted, can_delete in DEFAULT_ROLES:
        if role_id in existing_role_ids:
            continue
        role_service.create_role(
            theater_id,
            name,
            description=description,
            role_id=role_id,
            granted_pages=granted,
            is_default=True,
            can_delete=can_delete,
            commit=False,
        )
        created["roles"] += 1

    created["settings"] = settings_service.initialize_defaults(theater_id, commit=False)
    return created


def set_theater_active(theater_id: int, is_active: bool) -> Theater:
    theater = get_theater(theater_id)
    theater.is_active = bool(is_active)
    db.session.commit()
    return theater


def list_products(theater_id: int, *, include_inactive: bool = False) -> list[Product]:
    query = db.session.query(Product).filter(Product.theater_id == theater_id)
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    return query.order_by(Product.name.asc()).all()


def create_product(theater_id: int, name: str, *, unit: str = "pcs", price_cents: int = 0) -> Product:
    get_theater(theater_id)
    name = (name or "").strip()
    if not name:
        raise ValidationError("Product name is required")
    if price_cents < 0:
        raise ValidationError("price_cents must be >= 0")
    if db.session.query(Product.id).filter_by(theater_id=theater_id, name=name).first() is not None:
        raise Conflict(f"Product '{name}' already exists")
    product = Product(theater_id=theater_id, name=name, unit=(unit or "pcs").strip(), price_cents=price_cents)
    db.session.add(product)
    db.session.commit()
    return product


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFound("Product not found")
    return product
