# Overview: Utility functions for page catalog lookups and validation.

import re

from .categories import PAGE_CATEGORIES
from .pages import DEFAULT_PAGES


def get_default_page_ids():
    """Get list of all default page identifiers."""
    return [page[0] for page in DEFAULT_PAGES]


def get_page_definition(page_id):
    """Get full definition for a default page."""
    for page in DEFAULT_PAGES:
        if page[0] == page_id:
            return {
                "page": page[0],
                "page_name": page[1],
                "route": page[2],
                "category": page[3],
            }
    return None


def validate_category(category):
    """Check if a page category is valid."""
    return category in PAGE_CATEGORIES


def normalize_role_name(name):
    """Case- and whitespace-insensitive key used for role name uniqueness."""
    return " ".join(name.split()).lower()


def role_slug(name):
    """Derive a role identifier such as 'box-office-staff' from a role name."""
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug[:64]
