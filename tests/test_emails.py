import pytest
from sqlalchemy.exc import OperationalError

from app.emails import get_template
from app.emails.base import tracking_url
from app.models import AuditLog
from app.services import email_service, stripe_service
from app.services.stripe_service import OrderAddresses
from app.utils.currency import format_currency
from tests.conftest import BUYER_ID, make_listing, make_order, make_user

# Captured before the autouse fixture swaps it for an outbox
REAL_SEND_EMAIL = email_service.send_email

CONTEXT = {
    "order_number": "AB12CD34",
    "product_name": "Charizard <Base Set>",
    "product_image": "https://res.cloudinary.com/kado-test/charizard.jpg",
    "subtotal": "$199.99",
    "total": "$214.99",
    "tax": "$10.00",
    "shipping": "$5.00",
    "show_tax": True,
    "show_shipping": False,
    "customer_name": "Ash",
    "carrier": "usps",
    "tracking_number": "9400 1118",
}


@pytest.mark.parametrize("cents, currency, expected", [
    (1999, "USD", "$19.99"),
    (123456789, "usd", "$1,234,567.89"),
    (1000, "JPY", "¥1,000"),
    (-500, "USD", "-$5.00"),
    (1999, "CHF", "19.99 CHF"),
    (None, "USD", "$0.00"),
])
def test_format_currency(cents, currency, expected):
    assert format_currency(cents, currency) == expected


def test_confirmation_template():
    rendered = get_template("order_confirmation").render(CONTEXT)

    assert rendered["subject"] == "Order Confirmation - #AB12CD34"
    assert "Charizard &lt;Base Set&gt;" in rendered["html"]
    assert "$10.00" in rendered["html"]
    assert "$5.00" not in rendered["html"]


def test_shipped_template_links_carrier_tracking():
    rendered = get_template("order_shipped").render(CONTEXT)

    assert rendered["subject"] == "Your order has shipped - #AB12CD34"
    assert "https://tools.usps.com/go/TrackConfirmAction?tLabels=9400%201118" in rendered["html"]
    assert "USPS" in rendered["html"]


def test_tracking_url_for_unknown_carrier():
    assert tracking_url("pony_express", "123") is None
    assert tracking_url(None, "123") is None


def test_unknown_template():
    with pytest.raises(ValueError):
        get_template("newsletter")


def test_every_registered_template_renders():
    for email_type in (
        "order_confirmation",
        "seller_order_notification",
        "order_shipped",
        "order_in_transit",
        "order_delivered",
        "delivery_exception",
    ):
        rendered = get_template(email_type).render(CONTEXT)
        assert rendered["subject"].endswith("#AB12CD34")
        assert rendered["html"].startswith("<!DOCTYPE html>")


# =============================================================================
# SENDING
# =============================================================================

def test_send_records_success(db, sent_emails):
    make_user(db, BUYER_ID, email="buyer@example.com")
    order = make_order(db, make_listing(db))

    result = email_service.send_order_confirmation_email(db, order.id)

    assert result.success is True
    assert result.id == "email_1"
    audit = db.query(AuditLog).filter(AuditLog.action == "EMAIL_SENT").one()
    assert audit.entity_id == order.id
    assert audit.audit_metadata["emailType"] == "order_confirmation"


def test_missing_order_is_recorded(db, sent_emails):
    result = email_service.send_order_shipped_email(db, "missing")

    assert result.success is False
    audit = db.query(AuditLog).filter(AuditLog.action == "EMAIL_FAILED").one()
    assert audit.audit_metadata["reason"] == "order_not_found"
    assert sent_emails == []


def test_missing_recipient_is_recorded(db, sent_emails):
    order = make_order(db)

    result = email_service.send_order_confirmation_email(db, order.id)

    assert result.success is False
    audit = db.query(AuditLog).filter(AuditLog.action == "EMAIL_FAILED").one()
    assert audit.audit_metadata["reason"] == "missing_customer_email"


def test_checkout_addresses_fill_recipient_and_address(db, sent_emails, monkeypatch):
    order = make_order(db, stripe_session_id="cs_test_123")
    addresses = OrderAddresses(
        customer_email="checkout@example.com",
        customer_name="Ash Ketchum",
        shipping_address={"line1": "1 Pallet Rd", "city": "Pallet", "state": "KS", "postal_code": "66000", "country": "US"},
    )
    monkeypatch.setattr(stripe_service, "get_order_addresses", lambda session_id: addresses)

    result = email_service.send_order_confirmation_email(db, order.id)

    assert result.success is True
    assert sent_emails[0]["to"] == "checkout@example.com"
    assert "Pallet, KS 66000" in sent_emails[0]["html"]
    assert "Hi Ash Ketchum" in sent_emails[0]["html"]


def test_seller_email_falls_back_to_auth0(db, sent_emails):
    order = make_order(db)

    result = email_service.send_seller_order_notification_email(db, order.id)

    assert result.success is True
    assert sent_emails[0]["to"] == "seller@example.com"


def test_missing_api_key_is_recorded(db, monkeypatch):
    make_user(db, BUYER_ID, email="buyer@example.com")
    order = make_order(db)
    monkeypatch.setattr(email_service, "send_email", REAL_SEND_EMAIL)
    monkeypatch.delenv("RESEND_API_KEY")

    result = email_service.send_order_confirmation_email(db, order.id)

    assert result.success is False
    audit = db.query(AuditLog).filter(AuditLog.action == "EMAIL_FAILED").one()
    assert audit.audit_metadata["reason"] == "missing_resend_api_key"


def test_unexpected_error_never_raises_even_when_audit_fails(db, sent_emails, monkeypatch):
    make_user(db, BUYER_ID, email="buyer@example.com")
    order = make_order(db, stripe_session_id="cs_test_123")

    def broken_addresses(session_id):
        raise RuntimeError("stripe exploded")

    def broken_audit(*args, **kwargs):
        raise OperationalError("INSERT INTO audit_logs", {}, Exception("database is locked"))

    monkeypatch.setattr(stripe_service, "get_order_addresses", broken_addresses)
    monkeypatch.setattr(email_service, "log_audit_event", broken_audit)

    result = email_service.send_order_confirmation_email(db, order.id)

    assert result.success is False
    assert result.error == "stripe exploded"
    assert sent_emails == []
