"""
Authorization tests for the theater canteen API.

Verifies:
- Unauthenticated requests return 401 with the error envelope
- Customers and staff are denied admin operations (403)
- Page-access gates deny until the role is granted the page
- Theater admins can perform privileged operations in their own theater
"""

import pytest

from theaterpos.models import SecurityEvent
from theaterpos.permissions import KIOSK_ROLE_ID


# =============================================================================
# UNAUTHENTICATED ACCESS - 401
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/auth/me"),
            ("POST", "/api/auth/logout"),
            ("PUT", "/api/auth/password"),
            ("GET", "/api/users"),
            ("POST", "/api/users"),
            ("GET", "/api/theaters"),
            ("POST", "/api/theaters"),
            ("GET", "/api/theaters/1/order-interface"),
            ("GET", "/api/products/1"),
            ("GET", "/api/roles/1"),
            ("GET", "/api/page-access/1"),
            ("POST", "/api/page-access/1/grant"),
            ("GET", "/api/settings/1"),
            ("PUT", "/api/settings/1/general/taxRate"),
            ("GET", "/api/stock-history/1/years"),
            ("POST", "/api/stock-history/1/sales"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path, json={})
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"
        assert resp.json["success"] is False
        assert resp.json["code"] == "InvalidToken"

    def test_garbage_token_rejected(self, client, db_session):
        resp = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-token"})
        assert resp.status_code == 401

    def test_public_endpoints_need_no_token(self, client, db_session, theater_a):
        assert client.get("/health").status_code == 200
        assert client.get("/version").status_code == 200
        assert client.get(f"/api/settings/{theater_a.id}/public").status_code == 200


# =============================================================================
# ROLE DENIALS - 403
# =============================================================================


class TestRoleDenied:

    def test_customer_cannot_list_users(self, client, customer, login):
        resp = client.get("/api/users", headers=login(customer))
        assert resp.status_code == 403
        assert resp.json["code"] == "Forbidden"

    def test_staff_cannot_create_theater(self, client, kiosk_a, login):
        resp = client.post("/api/theaters", json={"name": "Rogue"}, headers=login(kiosk_a))
        assert resp.status_code == 403

    def test_theater_admin_cannot_create_theater(self, client, admin_a, login):
        resp = client.post("/api/theaters", json={"name": "Rogue"}, headers=login(admin_a))
        assert resp.status_code == 403

    def test_staff_cannot_grant_pages(self, client, theater_a, kiosk_a, login):
        resp = client.post(
            f"/api/page-access/{theater_a.id}/grant",
            json={"roleId": KIOSK_ROLE_ID, "page": "TheaterOrderInterface"},
            headers=login(kiosk_a),
        )
        assert resp.status_code == 403

    def test_role_denial_is_audited(self, client, db_session, customer, login):
        client.get("/api/users", headers=login(customer))
        assert db_session.query(SecurityEvent).filter_by(event_type="ROLE_DENIED").count() == 1

    def test_theater_admin_creates_only_staff(self, client, theater_a, admin_a, login):
        resp = client.post("/api/users", json={
            "username": "new_admin",
            "email": "new_admin@example.com",
            "password": "Password123!",
            "role": "theater_admin",
        }, headers=login(admin_a))
        assert resp.status_code == 403

    def test_nobody_deletes_themselves(self, client, super_admin, login):
        resp = client.delete(f"/api/users/{super_admin.id}", headers=login(super_admin))
        assert resp.status_code == 403


# =============================================================================
# PAGE ACCESS GATE
# =============================================================================


class TestPageAccessGate:

    def test_kiosk_denied_until_granted(self, client, db_session, theater_a, admin_a, kiosk_a, login):
        kiosk_headers = login(kiosk_a)
        path = f"/api/theaters/{theater_a.id}/order-interface"

        denied = client.get(path, headers=kiosk_headers)
        assert denied.status_code == 403
        assert db_session.query(SecurityEvent).filter_by(event_type="PAGE_ACCESS_DENIED").count() == 1

        grant = client.post(
            f"/api/page-access/{theater_a.id}/grant",
            json={"roleId": KIOSK_ROLE_ID, "page": "TheaterOrderInterface"},
            headers=login(admin_a),
        )
        assert grant.status_code == 200
        assert grant.json["data"]["has_access"] is True

        allowed = client.get(path, headers=kiosk_headers)
        assert allowed.status_code == 200
        assert allowed.json["success"] is True

    def test_revoke_takes_effect_immediately(self, client, theater_a, admin_a, kiosk_a, login):
        admin_headers = login(admin_a)
        body = {"roleId": KIOSK_ROLE_ID, "page": "TheaterOrderInterface"}
        client.post(f"/api/page-access/{theater_a.id}/grant", json=body, headers=admin_headers)
        client.post(f"/api/page-access/{theater_a.id}/revoke", json=body, headers=admin_headers)

        resp = client.get(f"/api/theaters/{theater_a.id}/order-interface", headers=login(kiosk_a))
        assert resp.status_code == 403

    def test_admin_role_passes(self, client, theater_a, admin_a, product_a, login):
        resp = client.get(f"/api/theaters/{theater_a.id}/order-interface", headers=login(admin_a))
        assert resp.status_code == 200
        products = resp.json["data"]["products"]
        assert [p["name"] for p in products] == ["Popcorn Large"]
        assert products[0]["stock_on_hand"] == 0

    def test_stock_writes_need_stock_page(self, client, theater_a, kiosk_a, product_a, login):
        resp = client.post(
            f"/api/stock-history/{product_a.id}/receipts",
            json={"date": "2024-03-01", "quantity": 5},
            headers=login(kiosk_a),
        )
        assert resp.status_code == 403

    def test_check_endpoint_reports_own_role(self, client, theater_a, kiosk_a, login):
        resp = client.get(
            f"/api/page-access/{theater_a.id}/check?page=TheaterOrderInterface",
            headers=login(kiosk_a),
        )
        assert resp.status_code == 200
        assert resp.json["data"] == {"page": "TheaterOrderInterface", "has_access": False}
