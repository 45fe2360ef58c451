from app.core.exceptions import UpstreamError
from app.models import User
from app.services import auth0_service
from tests.conftest import BUYER_ID, OTHER_ID, SELLER_ID, auth_headers, make_user

PROFILE = {"firstName": "Ash", "lastName": "Ketchum", "displayName": "ash_k"}


def test_me_returns_auth0_profile(client):
    res = client.get("/api/user/me", headers=auth_headers())

    assert res.status_code == 200
    user = res.json()["user"]
    assert user["sub"] == BUYER_ID
    assert user["email"] == "buyer@example.com"
    assert user["name"] == "Ash Buyer"


def test_me_reports_auth0_failure(client, monkeypatch):
    def unavailable(user_id):
        raise UpstreamError("boom", service="auth0")

    monkeypatch.setattr(auth0_service, "get_user", unavailable)

    res = client.get("/api/user/me", headers=auth_headers())

    assert res.status_code == 500
    assert res.json()["error"] == "Failed to fetch user profile"


def test_check_slug(client, db):
    make_user(db, SELLER_ID, slug="MistyCards")

    taken = client.get("/api/user/check-slug", params={"slug": "mistycards"})
    free = client.get("/api/user/check-slug", params={"slug": "ash-cards"})
    own = client.get("/api/user/check-slug", params={"slug": "mistycards"}, headers=auth_headers(SELLER_ID))

    assert taken.json() == {"available": False, "slug": "mistycards"}
    assert free.json() == {"available": True, "slug": "ash-cards"}
    assert own.json()["available"] is True


def test_check_slug_validation(client):
    assert client.get("/api/user/check-slug", params={"slug": "ab"}).status_code == 400
    assert client.get("/api/user/check-slug", params={"slug": "-bad"}).status_code == 400
    assert client.get("/api/user/check-slug").json()["error"] == "Slug is required"


def test_check_username(client, fake_auth0):
    fake_auth0.add_user(OTHER_ID, user_metadata={"displayName": "gary_oak"})

    taken = client.get("/api/user/check-username", params={"username": "gary_oak"}, headers=auth_headers())
    free = client.get("/api/user/check-username", params={"username": "ash_k"}, headers=auth_headers())
    own = client.get(
        "/api/user/check-username", params={"username": "gary_oak"}, headers=auth_headers(OTHER_ID)
    )

    assert taken.json() == {"available": False, "username": "gary_oak"}
    assert free.json() == {"available": True, "username": "ash_k"}
    assert own.json()["available"] is True


def test_check_username_rejects_invalid_characters(client):
    res = client.get("/api/user/check-username", params={"username": "ash k"}, headers=auth_headers())

    assert res.status_code == 400
    assert res.json()["error"] == "Username can only contain letters, numbers, and underscores"


def test_check_username_degrades_when_auth0_is_down(client, monkeypatch):
    def unavailable(query, per_page=1):
        raise UpstreamError("search down", service="auth0")

    monkeypatch.setattr(auth0_service, "search_users", unavailable)

    res = client.get("/api/user/check-username", params={"username": "ash_k"}, headers=auth_headers())

    assert res.json() == {
        "available": True,
        "username": "ash_k",
        "warning": "Could not verify username availability",
    }


def test_update_profile(client, db, fake_auth0):
    res = client.post(
        "/api/user/update-profile",
        json={**PROFILE, "slug": "ash-cards", "phone": " 555-0100 "},
        headers=auth_headers(),
    )

    assert res.status_code == 200
    assert res.json() == {"success": True, "message": "Profile updated successfully"}
    metadata = fake_auth0.users[BUYER_ID]["user_metadata"]
    assert metadata["displayName"] == "ash_k"
    assert metadata["profileComplete"] is True
    assert metadata["phone"] == "555-0100"
    user = db.get(User, BUYER_ID)
    assert user.slug == "ash-cards"
    assert user.display_name == "ash_k"


def test_update_profile_requires_names(client):
    res = client.post("/api/user/update-profile", json={"firstName": "Ash"}, headers=auth_headers())

    assert res.status_code == 400
    assert res.json()["error"] == "Missing required fields: firstName, lastName, displayName"


def test_update_profile_taken_slug_changes_nothing(client, db, fake_auth0):
    make_user(db, SELLER_ID, slug="ash-cards")

    res = client.post("/api/user/update-profile", json={**PROFILE, "slug": "ASH-CARDS"}, headers=auth_headers())

    assert res.status_code == 409
    assert res.json()["error"] == "This URL is already taken"
    assert fake_auth0.updates == []


def test_update_profile_hides_auth0_grant_errors(client, monkeypatch):
    def missing_grant(user_id, updates):
        raise UpstreamError("Client is not authorized to access resource server", service="auth0")

    monkeypatch.setattr(auth0_service, "update_user_metadata", missing_grant)

    res = client.post("/api/user/update-profile", json=PROFILE, headers=auth_headers())

    assert res.status_code == 500
    assert res.json()["error"] == (
        "Unable to update your profile right now. Please contact support if this persists."
    )


def test_update_email(client, db, fake_auth0):
    res = client.post("/api/user/update-email", json={"email": " Ash@Example.com "}, headers=auth_headers())

    assert res.json() == {"success": True, "email": "ash@example.com", "updatedPrimary": True}
    assert db.get(User, BUYER_ID).email == "ash@example.com"


def test_update_email_when_primary_is_locked(client, db, monkeypatch):
    def locked(user_id, payload):
        raise UpstreamError("Cannot update email for social connections", service="auth0")

    monkeypatch.setattr(auth0_service, "update_user", locked)

    res = client.post("/api/user/update-email", json={"email": "ash@example.com"}, headers=auth_headers())

    assert res.json()["updatedPrimary"] is False
    assert db.get(User, BUYER_ID).email == "ash@example.com"


def test_update_email_rejects_invalid(client):
    res = client.post("/api/user/update-email", json={"email": "not-an-email"}, headers=auth_headers())

    assert res.status_code == 400
    assert res.json()["error"] == "Valid email is required"
