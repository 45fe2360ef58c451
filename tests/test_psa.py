from datetime import datetime

import pytest

from app.models import Card, GradingCertificate, SalesData
from app.services import psa_service, sales_data_service
from app.services.psa_service import CertificateImages
from tests.conftest import OTHER_ID, auth_headers

PSA_RESPONSE = {
    "PSACert": {
        "CertNumber": "12345678",
        "SpecID": 145677,
        "Subject": "CHARIZARD-HOLO",
        "Brand": "POKEMON GAME",
        "CardNumber": 4,
        "Variety": "1ST EDITION",
        "CardGrade": "MINT 9",
        "GradeDescription": "MINT 9",
    }
}

FRONT_BACK = CertificateImages(
    front_image_url="https://images.psacard.com/front.jpg",
    back_image_url="https://images.psacard.com/back.jpg",
)


@pytest.mark.parametrize("brand, expected", [
    ("POKEMON JAPANESE SWORD & SHIELD", "Japanese Sword & Shield"),
    ("POKEMON GAME", "Game"),
    ("PFL EN-BASE SET", "Base Set"),
    ("", None),
    (None, None),
])
def test_parse_brand(brand, expected):
    assert psa_service.parse_brand(brand) == expected


@pytest.mark.parametrize("response, expected", [
    ({"CardGrade": "10"}, 10.0),
    ({"CardGrade": "MINT 9", "GradeDescription": "MINT 9"}, 9.0),
    ({"GradeDescription": "NM-MT 8.5"}, 8.5),
    ({}, None),
])
def test_parse_grade(response, expected):
    assert psa_service.parse_grade(response) == expected


def test_normalize_cert_number():
    assert psa_service.normalize_cert_number(" 1234-5678 ") == "12345678"


def test_extract_card_data_from_nested_response():
    assert psa_service.extract_card_data(PSA_RESPONSE) == {
        "card_name": "CHARIZARD-HOLO",
        "set_name": "Game",
        "card_number": "4",
        "variety": "1ST EDITION",
        "psa_spec_id": "145677",
        "image_grade": 9.0,
    }
    assert psa_service.extract_card_data({"Brand": "POKEMON GAME"}) is None


def test_card_is_reused_by_spec_id(db):
    card_data = psa_service.extract_card_data(PSA_RESPONSE)

    first = psa_service.find_or_create_card(db, card_data)
    second = psa_service.find_or_create_card(db, card_data)

    assert first.id == second.id
    assert db.query(Card).count() == 1


def test_higher_grade_scans_replace_card_images(db):
    card_data = psa_service.extract_card_data(PSA_RESPONSE)
    card = psa_service.find_or_create_card(db, card_data, FRONT_BACK)

    psa_service.find_or_create_card(
        db, {**card_data, "image_grade": 8.0}, CertificateImages(front_image_url="https://x/psa8.jpg")
    )
    assert card.front_image_url == "https://images.psacard.com/front.jpg"

    psa_service.find_or_create_card(
        db, {**card_data, "image_grade": 10.0}, CertificateImages(front_image_url="https://x/psa10.jpg")
    )
    assert card.front_image_url == "https://x/psa10.jpg"
    assert card.back_image_url == "https://images.psacard.com/back.jpg"
    assert card.highest_image_grade == 10.0


def test_lookup_route_stores_card_and_certificate(client, db, monkeypatch):
    monkeypatch.setattr(psa_service, "lookup_certificate", lambda cert_number: dict(PSA_RESPONSE))
    monkeypatch.setattr(psa_service, "fetch_certificate_images", lambda cert_number: FRONT_BACK)

    res = client.get("/api/certificates/psa/lookup", params={"certNumber": "1234 5678"})

    assert res.status_code == 200
    body = res.json()
    assert body["success"] is True
    assert body["card"]["cardName"] == "CHARIZARD-HOLO"
    assert body["card"]["frontImageUrl"] == "https://images.psacard.com/front.jpg"
    assert body["certificate"]["certNumber"] == "12345678"
    assert body["certificate"]["grade"] == 9.0
    assert body["certificate"]["cardId"] == body["cardId"]


def test_lookup_is_idempotent(client, db, monkeypatch):
    monkeypatch.setattr(psa_service, "lookup_certificate", lambda cert_number: dict(PSA_RESPONSE))
    monkeypatch.setattr(psa_service, "fetch_certificate_images", lambda cert_number: CertificateImages())

    client.post("/api/certificates/psa/lookup", json={"certNumber": "12345678"})
    client.post("/api/certificates/psa/lookup", json={"certNumber": "12345678"})

    assert db.query(Card).count() == 1
    assert db.query(GradingCertificate).count() == 1


def test_lookup_requires_cert_number(client):
    res = client.get("/api/certificates/psa/lookup")

    assert res.status_code == 400
    assert res.json()["error"] == "certNumber is required"


# =============================================================================
# SALES DATA
# =============================================================================

def test_psa_sale_creates_card_certificate_and_sale(db):
    result = sales_data_service.process_psa_sales_data(
        db,
        value=420.0,
        date=datetime(2025, 6, 1),
        psa_api_response=PSA_RESPONSE,
        cert_number="12345678",
        certificate_images=FRONT_BACK,
        source="ebay",
    )

    sale = db.get(SalesData, result["salesDataId"])
    assert sale.card_id == result["cardId"]
    assert sale.grading_company == "PSA"
    assert sale.grading_certificate_id == db.query(GradingCertificate).one().id


def test_sale_without_card_data_is_not_recorded(db):
    result = sales_data_service.process_psa_sales_data(
        db, value=1.0, date=datetime(2025, 6, 1), psa_api_response={"foo": "bar"}
    )

    assert result == {"cardId": None, "salesDataId": None}
    assert db.query(SalesData).count() == 0


def test_other_company_sale_uses_explicit_fields(db):
    result = sales_data_service.process_sales_data(
        db,
        grading_company="TAG",
        value=99.0,
        date=datetime(2025, 6, 1),
        cert_number="T-1",
        card_name="Pikachu",
        set_name="Jungle",
    )

    card = db.get(Card, result["cardId"])
    assert card.card_name == "Pikachu"
    assert db.query(GradingCertificate).one().grading_company == "TAG"


def test_admin_sales_data_route(client, db, fake_auth0, monkeypatch):
    fake_auth0.roles[OTHER_ID] = [{"name": "admin"}]
    monkeypatch.setattr(psa_service, "fetch_certificate_images", lambda cert_number: FRONT_BACK)

    res = client.post(
        "/api/admin/sales-data",
        json={
            "gradingCompany": "psa",
            "value": 420.0,
            "date": "2025-06-01T00:00:00",
            "certNumber": "12345678",
            "psaApiResponse": PSA_RESPONSE,
        },
        headers=auth_headers(OTHER_ID, email="admin@example.com"),
    )

    assert res.status_code == 201
    assert res.json()["salesDataId"] is not None


def test_admin_sales_data_route_rejects_unparseable_psa(client, db, fake_auth0):
    fake_auth0.roles[OTHER_ID] = [{"name": "admin"}]

    res = client.post(
        "/api/admin/sales-data",
        json={"value": 1.0, "date": "2025-06-01T00:00:00", "psaApiResponse": {"foo": "bar"}},
        headers=auth_headers(OTHER_ID, email="admin@example.com"),
    )

    assert res.status_code == 400
    assert res.json()["error"] == "Could not extract card data from PSA response"
