# Overview: Page category constants for grouping pages in the access matrix.


class PageCategory:
    """Page categories for organization and UI display."""
    DASHBOARD = "dashboard"
    PRODUCTS = "products"
    ORDERS = "orders"
    CUSTOMERS = "customers"
    REPORTS = "reports"
    SETTINGS = "settings"
    ADMIN = "admin"
    QR = "qr"
    USERS = "users"
    STOCK = "stock"


PAGE_CATEGORIES = (
    PageCategory.DASHBOARD,
    PageCategory.PRODUCTS,
    PageCategory.ORDERS,
    PageCategory.CUSTOMERS,
    PageCategory.REPORTS,
    PageCategory.SETTINGS,
    PageCategory.ADMIN,
    PageCategory.QR,
    PageCategory.USERS,
    PageCategory.STOCK,
)
