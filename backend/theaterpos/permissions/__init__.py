# Overview: Page-access catalog package.
# Re-exports all public APIs for convenient imports.

from .categories import PageCategory, PAGE_CATEGORIES
from .pages import DEFAULT_PAGES
from .roles import DEFAULT_ROLES, ALL_PAGES, THEATER_ADMIN_ROLE_ID, KIOSK_ROLE_ID
from .helpers import (
    get_default_page_ids,
    get_page_definition,
    validate_category,
    normalize_role_name,
    role_slug,
)

__all__ = [
    "PageCategory",
    "PAGE_CATEGORIES",
    "DEFAULT_PAGES",
    "DEFAULT_ROLES",
    "ALL_PAGES",
    "THEATER_ADMIN_ROLE_ID",
    "KIOSK_ROLE_ID",
    "get_default_page_ids",
    "get_page_definition",
    "validate_category",
    "normalize_role_name",
    "role_slug",
]
