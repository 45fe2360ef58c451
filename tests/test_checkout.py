import stripe

from app.models import AuditLog, Listing, Order, OrderEvent, User
from app.services import stripe_service
from tests.conftest import BUYER_ID, SELLER_ID, auth_headers, make_listing, make_user


def test_checkout_creates_pending_order_and_session(client, db, fake_checkout):
    make_user(db, SELLER_ID, display_name="Misty")
    listing = make_listing(db)

    res = client.post(
        f"/api/listings/{listing.id}/checkout",
        json={"timezone": "America/New_York"},
        headers={**auth_headers(), "X-Forwarded-For": "203.0.113.7", "User-Agent": "pytest-agent"},
    )

    assert res.status_code == 200
    assert res.json() == {"url": "https://checkout.stripe.com/c/pay/cs_test_123"}

    order = db.query(Order).one()
    assert order.status == "PENDING"
    assert order.buyer_id == BUYER_ID
    assert order.seller_id == SELLER_ID
    assert order.seller_name == "Misty"
    assert order.subtotal_cents == order.total_cents == 19999
    assert order.description == "Listing purchase - Charizard - Base Set PSA 9"
    assert order.snapshot_listing_display_title == listing.display_title
    assert order.snapshot_listing_price_cents == 19999
    assert order.is_test_payment is True
    assert order.purchase_timezone == "America/New_York"
    assert order.stripe_session_id == "cs_test_123"
    assert order.stripe_customer_id == "cus_test_123"

    events = db.query(OrderEvent).filter(OrderEvent.order_id == order.id).all()
    assert [e.type for e in events] == ["ORDER_CREATED"]

    audit = db.query(AuditLog).filter(AuditLog.action == "CREATE", AuditLog.entity_type == "Order").one()
    assert audit.entity_id == order.id
    assert audit.ip_address == "203.0.113.7"
    assert audit.user_agent == "pytest-agent"


def test_checkout_session_parameters(client, db, fake_checkout):
    listing = make_listing(db)

    client.post(f"/api/listings/{listing.id}/checkout", headers=auth_headers())

    order = db.query(Order).one()
    session = fake_checkout["session"]
    assert session["order_id"] == order.id
    assert session["buyer_id"] == BUYER_ID
    assert session["listing_id"] == listing.id
    assert session["unit_amount"] == 19999
    assert session["success_url"] == (
        f"https://testserver/listings/{listing.id}/purchase/success"
        f"?orderId={order.id}&session_id={{CHECKOUT_SESSION_ID}}"
    )
    assert session["cancel_url"] == "https://testserver/seller/auth0%7Cseller/listings"


def test_checkout_creates_local_user_from_auth0(client, db, fake_checkout):
    listing = make_listing(db)

    client.post(f"/api/listings/{listing.id}/checkout", headers=auth_headers())

    buyer = db.query(User).filter(User.id == BUYER_ID).one()
    assert buyer.display_name == "Ash Buyer"


def test_checkout_requires_session(client, db, fake_checkout):
    listing = make_listing(db)

    res = client.post(f"/api/listings/{listing.id}/checkout")

    assert res.status_code == 401
    assert res.json()["error"] == "Unauthorized"


def test_checkout_unknown_listing(client, db, fake_checkout):
    res = client.post("/api/listings/missing/checkout", headers=auth_headers())

    assert res.status_code == 404
    assert res.json()["error"] == "Listing not found"


def test_checkout_rejects_unpublished_listing(client, db, fake_checkout):
    listing = make_listing(db, status="DRAFT")

    res = client.post(f"/api/listings/{listing.id}/checkout", headers=auth_headers())

    assert res.status_code == 400
    assert res.json()["error"] == "Listing is not available for purchase"
    assert db.query(Order).count() == 0


def test_checkout_rejects_own_listing(client, db, fake_checkout):
    listing = make_listing(db, seller_id=BUYER_ID)

    res = client.post(f"/api/listings/{listing.id}/checkout", headers=auth_headers())

    assert res.status_code == 400
    assert res.json()["error"] == "You cannot purchase your own listing"
    assert db.query(Order).count() == 0


def test_checkout_requires_an_email(client, db, fake_checkout, fake_auth0):
    fake_auth0.add_user(BUYER_ID, email=None)
    listing = make_listing(db)

    res = client.post(f"/api/listings/{listing.id}/checkout", headers=auth_headers(email=None))

    assert res.status_code == 428
    assert res.json() == {"error": "User email required", "code": "EMAIL_REQUIRED"}
    assert db.query(Order).count() == 0


def test_checkout_uses_email_override_as_last_resort(client, db, monkeypatch, fake_checkout, fake_auth0):
    fake_auth0.add_user(BUYER_ID, email=None)
    used = {}

    def get_or_create_customer(db, user, email):
        used["email"] = email
        return "cus_test_123"

    monkeypatch.setattr(stripe_service, "get_or_create_customer", get_or_create_customer)
    listing = make_listing(db)

    res = client.post(
        f"/api/listings/{listing.id}/checkout",
        json={"emailOverride": "ash@example.com"},
        headers=auth_headers(email=None),
    )

    assert res.status_code == 200
    assert used["email"] == "ash@example.com"


def test_checkout_prefers_stored_email(client, db, monkeypatch, fake_checkout):
    make_user(db, BUYER_ID, email="preferred@example.com")
    used = {}

    def get_or_create_customer(db, user, email):
        used["email"] = email
        return "cus_test_123"

    monkeypatch.setattr(stripe_service, "get_or_create_customer", get_or_create_customer)
    listing = make_listing(db)

    client.post(f"/api/listings/{listing.id}/checkout", headers=auth_headers())

    assert used["email"] == "preferred@example.com"


def test_checkout_stripe_error(client, db, monkeypatch, fake_checkout):
    def failing_session(**kwargs):
        raise stripe.StripeError("Your card was declined")

    monkeypatch.setattr(stripe_service, "create_checkout_session", failing_session)
    listing = make_listing(db)

    res = client.post(f"/api/listings/{listing.id}/checkout", headers=auth_headers())

    assert res.status_code == 500
    assert res.json()["error"] == "Stripe error: Your card was declined"
    assert db.query(Listing).one().status == "PUBLISHED"
