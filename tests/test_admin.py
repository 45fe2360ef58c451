import pytest

from app.core.exceptions import UpstreamError
from app.models import InvitationCode
from app.services import admin_service, email_service, stripe_service
from tests.conftest import BUYER_ID, OTHER_ID, SELLER_ID, auth_headers, make_user

ADMIN_ID = "auth0|admin"


@pytest.fixture()
def admin(fake_auth0):
    fake_auth0.add_user(ADMIN_ID, email="admin@example.com")
    fake_auth0.roles[ADMIN_ID] = [{"id": "rol_1", "name": "Admin"}]
    return auth_headers(ADMIN_ID, email="admin@example.com")


def test_is_admin_from_roles_api(fake_auth0):
    fake_auth0.roles[OTHER_ID] = [{"name": "admin"}]

    assert admin_service.is_admin(OTHER_ID) is True
    assert admin_service.is_admin(BUYER_ID) is False


def test_is_admin_falls_back_to_metadata(fake_auth0, monkeypatch):
    def roles_down(user_id):
        raise UpstreamError("roles API down", service="auth0")

    monkeypatch.setattr(admin_service.auth0_service, "get_user_roles", roles_down)
    fake_auth0.add_user(OTHER_ID, app_metadata={"roles": ["ADMIN"]})

    assert admin_service.is_admin(OTHER_ID) is True


def test_is_admin_is_false_when_auth0_fails(monkeypatch):
    def unavailable(user_id):
        raise UpstreamError("auth0 down", service="auth0")

    monkeypatch.setattr(admin_service.auth0_service, "get_user_roles", unavailable)
    monkeypatch.setattr(admin_service.auth0_service, "get_user", unavailable)

    assert admin_service.is_admin(BUYER_ID) is False


def test_check_never_fails(client, db, admin):
    assert client.get("/api/admin/check").json() == {"isAdmin": False}
    assert client.get("/api/admin/check", headers=auth_headers()).json() == {"isAdmin": False}
    assert client.get("/api/admin/check", headers=admin).json() == {"isAdmin": True}


def test_admin_routes_require_admin(client, db):
    res = client.get("/api/admin/invitation-codes", headers=auth_headers())

    assert res.status_code == 403
    assert res.json()["error"] == "Admin access required"
    assert client.get("/api/admin/sellers").status_code == 401


def test_generate_and_list_invitation_codes(client, db, admin):
    res = client.post("/api/admin/invitation-codes", json={"count": 3}, headers=admin)

    assert res.status_code == 200
    body = res.json()
    assert body["success"] is True
    assert body["count"] == 3
    assert len(body["codes"]) == 3
    assert {c.created_by for c in db.query(InvitationCode).all()} == {ADMIN_ID}

    listing = client.get("/api/admin/invitation-codes", headers=admin).json()
    assert listing["summary"] == {"total": 3, "used": 0, "unused": 3}


def test_generate_rejects_bad_count(client, db, admin):
    res = client.post("/api/admin/invitation-codes", json={"count": 0}, headers=admin)

    assert res.status_code == 400
    assert res.json()["error"] == "Count must be between 1 and 500"


def test_list_sellers(client, db, admin, monkeypatch):
    make_user(db, SELLER_ID, email="seller@example.com", stripe_account_id="acct_1")
    make_user(db, BUYER_ID, email="buyer@example.com")
    monkeypatch.setattr(stripe_service, "retrieve_account", lambda account_id: {"id": account_id})
    monkeypatch.setattr(stripe_service, "account_status", lambda account: "verified")

    body = client.get("/api/admin/sellers", headers=admin).json()

    assert body["count"] == 1
    assert body["sellers"][0]["stripeAccountId"] == "acct_1"
    assert body["sellers"][0]["verificationStatus"] == "verified"


def test_sales_data_requires_psa_payload(client, db, admin):
    res = client.post(
        "/api/admin/sales-data",
        json={"gradingCompany": "PSA", "value": 250.0, "date": "2025-06-01T00:00:00"},
        headers=admin,
    )

    assert res.status_code == 400
    assert res.json()["error"] == "psaApiResponse is required for PSA sales"


def test_test_email(client, db, admin, sent_emails):
    res = client.post("/api/admin/test-email", json={"to": "ops@example.com"}, headers=admin)

    assert res.json() == {"success": True, "id": "email_1", "error": None}
    assert sent_emails[0]["subject"].startswith("[TEST] ")
    assert sent_emails[0]["sender"] == "noreply"


def test_test_email_rejects_bad_address(client, db, admin):
    res = client.post("/api/admin/test-email", json={"to": "not-an-email"}, headers=admin)

    assert res.status_code == 400
    assert res.json()["error"] == "Invalid request"
