import pytest

from app.core.exceptions import ValidationError
from app.models import User
from app.services import media_service
from tests.conftest import BUYER_ID, auth_headers


def test_api_sign_request_matches_cloudinary():
    assert media_service.api_sign_request({"b": 2, "a": 1}, "secret") == "69021e767b8b2f38af0bcc5fcefee075eb2ec60d"


def test_api_sign_request_skips_empty_values():
    signed = media_service.api_sign_request({"a": 1, "b": 2, "c": "", "d": None}, "secret")

    assert signed == "69021e767b8b2f38af0bcc5fcefee075eb2ec60d"


def test_listing_photo_signature():
    params = media_service.listing_photo_upload_signature(timestamp=1700000000)

    assert params == {
        "folder": "listing-photos",
        "timestamp": 1700000000,
        "signature": "7fb6b2a481c60737807a0497102207475b408120",
        "cloud_name": "kado-test",
        "api_key": "test-api-key",
    }


def test_avatar_signature_covers_moderation_and_transformation():
    params = media_service.avatar_upload_signature(timestamp=1700000000)

    assert params["upload_preset"] == "user_avatars"
    assert params["moderation"] == "aws_rek"
    assert params["signature"] == "5ab27dcd51bf4c92c618dc31a340572035652d57"


def test_validate_avatar_upload():
    assert media_service.validate_avatar_upload("avatars/abc", "https://res.cloudinary.com/x.jpg") == {
        "public_id": "avatars/abc",
        "secure_url": "https://res.cloudinary.com/x.jpg",
    }
    with pytest.raises(ValidationError):
        media_service.validate_avatar_upload("listing-photos/abc", "https://res.cloudinary.com/x.jpg")
    with pytest.raises(ValidationError):
        media_service.validate_avatar_upload(None, "https://res.cloudinary.com/x.jpg")


def test_avatar_urls():
    assert media_service.avatar_url("avatars/abc", size=64) == (
        "https://res.cloudinary.com/kado-test/image/upload/c_fill,g_face,w_64,h_64,q_auto,f_auto/avatars/abc"
    )
    assert media_service.default_avatar_url("Ash Ketchum") == (
        "https://ui-avatars.com/api/?name=Ash%20Ketchum&size=300&background=random"
    )


# =============================================================================
# ROUTES
# =============================================================================

def test_upload_signature_route(client):
    res = client.get("/api/avatar/upload-signature", headers=auth_headers())

    assert res.status_code == 200
    assert res.json()["folder"] == "avatars"
    assert res.json()["api_key"] == "test-api-key"


def test_upload_signature_is_throttled_in_production(client, monkeypatch):
    monkeypatch.setenv("RUNTIME_ENV", "production")

    first = client.get("/api/avatar/upload-signature", headers=auth_headers())
    second = client.get("/api/avatar/upload-signature", headers=auth_headers())

    assert first.status_code == 200
    assert second.status_code == 429
    assert second.json()["error"] == "Rate limit exceeded. Please wait before uploading again."
    assert second.headers["Retry-After"] == "60"


def test_upload_signature_not_throttled_in_staging(client):
    for _ in range(3):
        assert client.get("/api/avatar/upload-signature", headers=auth_headers()).status_code == 200


def test_listing_photo_signature_route(client):
    res = client.get("/api/listings/upload-signature", headers=auth_headers())

    assert res.status_code == 200
    assert res.json()["folder"] == "listing-photos"


def test_avatar_update(client, db, fake_auth0):
    res = client.post(
        "/api/avatar/update",
        json={"public_id": "avatars/ash", "secure_url": "https://res.cloudinary.com/kado-test/avatars/ash.jpg"},
        headers=auth_headers(),
    )

    assert res.status_code == 200
    assert res.json()["avatar"] == {
        "public_id": "avatars/ash",
        "secure_url": "https://res.cloudinary.com/kado-test/avatars/ash.jpg",
    }
    metadata = fake_auth0.users[BUYER_ID]["user_metadata"]
    assert metadata["avatar"]["public_id"] == "avatars/ash"
    assert db.get(User, BUYER_ID).avatar_url == "https://res.cloudinary.com/kado-test/avatars/ash.jpg"


def test_avatar_update_rejected_by_moderation(client, db, fake_auth0):
    res = client.post(
        "/api/avatar/update",
        json={
            "public_id": "avatars/ash",
            "secure_url": "https://res.cloudinary.com/kado-test/avatars/ash.jpg",
            "moderation_status": "rejected",
        },
        headers=auth_headers(),
    )

    assert res.status_code == 400
    assert res.json()["moderation_rejected"] is True
    assert fake_auth0.updates == []
