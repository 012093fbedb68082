# Overview: Default roles created when a theater is provisioned.
# Each role is defined as: (role_id, name, description, granted pages, can_delete)
# granted pages is either ALL_PAGES or a tuple of page identifiers.

ALL_PAGES = "*"

THEATER_ADMIN_ROLE_ID = "theater-admin"
KIOSK_ROLE_ID = "kiosk"

DEFAULT_ROLES = [
    (
        THEATER_ADMIN_ROLE_ID,
        "Theater Admin",
        "Full access to every page of the theater",
        ALL_PAGES,
        False,
    ),
    (
        KIOSK_ROLE_ID,
        "Kiosk Screen",
        "Self-service kiosk screens; access is granted page by page",
        (),
        False,
    ),
]
