# Overview: Default page catalog seeded into every theater's PageAccess list.
# Each page is defined as: (page, page_name, route, category)

from .categories import PageCategory


DASHBOARD_PAGES = [
    ("TheaterDashboardWithId", "Dashboard", "/theater-dashboard/:theaterId", PageCategory.DASHBOARD),
]

PRODUCT_PAGES = [
    ("TheaterProductList", "Product Stock", "/theater-products/:theaterId", PageCategory.PRODUCTS),
    ("ProductType", "Product Type", "/theater-product-types/:theaterId", PageCategory.PRODUCTS),
    ("KioskType", "Kiosk Type", "/theater-kiosk-types/:theaterId", PageCategory.PRODUCTS),
]

ORDER_PAGES = [
    ("TheaterOrderInterface", "POS", "/theater-order/:theaterId", PageCategory.ORDERS),
    ("OnlineOrderHistory", "Online Orders", "/online-order-history/:theaterId", PageCategory.ORDERS),
    ("ProductCancel", "Product Cancel", "/product-cancel/:theaterId", PageCategory.ORDERS),
]

STOCK_PAGES = [
    ("StockManagement", "Stock Management", "/theater-stock-management/:theaterId", PageCategory.STOCK),
]

REPORT_PAGES = [
    ("TheaterReports", "Reports", "/theater-reports/:theaterId", PageCategory.REPORTS),
]

QR_PAGES = [
    ("TheaterQRCodeNames", "QR Code Names", "/theater-qr-code-names/:theaterId", PageCategory.QR),
]

USER_PAGES = [
    ("TheaterUserManagement", "Theater Users", "/theater-user-management/:theaterId", PageCategory.USERS),
    ("TheaterRoles", "Role Management", "/theater-roles/:theaterId", PageCategory.USERS),
    ("TheaterRoleAccess", "Role Access", "/theater-role-access/:theaterId", PageCategory.USERS),
]

SETTINGS_PAGES = [
    ("TheaterSettingsWithId", "Settings", "/theater-settings/:theaterId", PageCategory.SETTINGS),
]

KIOSK_PAGES = [
    ("KioskProductList", "Kiosk Products", "/kiosk-products/:theaterId", PageCategory.ORDERS),
    ("KioskCart", "Kiosk Cart", "/kiosk-cart/:theaterId", PageCategory.ORDERS),
    ("KioskCheckout", "Kiosk Checkout", "/kiosk-checkout/:theaterId", PageCategory.ORDERS),
    ("KioskPayment", "Kiosk Payment", "/kiosk-payment/:theaterId", PageCategory.ORDERS),
]

DEFAULT_PAGES = (
    DASHBOARD_PAGES
    + PRODUCT_PAGES
    + ORDER_PAGES
    + STOCK_PAGES
    + REPORT_PAGES
    + QR_PAGES
    + USER_PAGES
    + SETTINGS_PAGES
    + KIOSK_PAGES
)
