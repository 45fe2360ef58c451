"""
Email Service - transactional email through Resend.

Configuration (environment variables, _PROD / _STAGING suffixed):
- RESEND_API_KEY: API key. When missing, sends are skipped and audited as
  EMAIL_FAILED / missing_resend_api_key.

Every send is recorded in the audit log (EMAIL_SENT / EMAIL_FAILED) and
reported back as a SendResult. Sending never raises: a failed notification
must not fail the operation that triggered it.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx
from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import RESEND_API_BASE, get_base_url, get_resend_api_key
from app.core.exceptions import KadoError
from app.emails import get_template
from app.models.order import Order
from app.services import auth0_service, stripe_service, user_service
from app.services.audit_service import log_audit_event
from app.utils.currency import format_currency

HTTP_TIMEOUT = 10.0

SENDERS = {
    "orders": "Kado.io <orders@mail.kado.io>",
    "shipping": "Kado.io <shipping@mail.kado.io>",
    "noreply": "Kado.io <noreply@mail.kado.io>",
}
REPLY_TO = "support@mail.kado.io"


@dataclass
class SendResult:
    success: bool
    error: Optional[str] = None
    id: Optional[str] = None


class EmailDeliveryError(KadoError):
    def __init__(self, message: str, reason: str):
        self.reason = reason
        super().__init__(message)


def send_email(to: str, subject: str, html: str, sender: str = "orders") -> str:
    """Send one email through Resend and return its id."""
    api_key = get_resend_api_key()
    if not api_key:
        raise EmailDeliveryError("RESEND_API_KEY is not configured", "missing_resend_api_key")

    try:
        response = httpx.post(
            f"{RESEND_API_BASE}/emails",
            headers={"Authorization": f"Bearer {api_key}"},
            json={
                "from": SENDERS.get(sender, SENDERS["orders"]),
                "to": [to],
                "reply_to": REPLY_TO,
                "subject": subject,
                "html": html,
            },
            timeout=HTTP_TIMEOUT,
        )
    except httpx.HTTPError as e:
        raise EmailDeliveryError(f"Resend unreachable: {e}", "resend_error")

    if response.status_code >= 400:
        raise EmailDeliveryError(f"Resend error {response.status_code}: {response.text}", "resend_error")
    return response.json().get("id")


# =============================================================================
# ORDER EMAIL CONTEXT
# =============================================================================

def _address_lines(name: Optional[str], address: Optional[Dict[str, Any]]) -> Optional[List[str]]:
    if not address:
        return None
    city_line = " ".join(
        part for part in (
            f"{address.get('city')}," if address.get("city") else None,
            address.get("state"),
            address.get("postal_code"),
        ) if part
    )
    lines = [name, address.get("line1"), address.get("line2"), city_line, address.get("country")]
    return [line for line in lines if line]


def build_order_email_context(order: Order, addresses=None) -> Dict[str, Any]:
    currency = order.currency or "USD"
    context = {
        "order_id": order.id,
        "order_number": order.order_number,
        "product_name": order.snapshot_listing_display_title or order.description or "Order",
        "product_image": order.snapshot_listing_image_url,
        "subtotal": format_currency(order.subtotal_cents, currency),
        "tax": format_currency(order.tax_cents, currency),
        "shipping": format_currency(order.shipping_cents, currency),
        "total": format_currency(order.total_cents, currency),
        "show_tax": (order.tax_cents or 0) > 0,
        "show_shipping": (order.shipping_cents or 0) > 0,
        "seller_name": order.seller_name,
        "carrier": order.shipping_carrier,
        "tracking_number": order.tracking_number,
        "order_url": f"{get_base_url()}/orders/{order.id}",
        "customer_name": None,
        "shipping_address_lines": None,
    }
    if addresses is not None:
        context["customer_name"] = addresses.customer_name
        context["shipping_address_lines"] = _address_lines(addresses.customer_name, addresses.shipping_address)
    return context


def _buyer_email(db: Session, order: Order, addresses) -> Optional[str]:
    buyer = user_service.get_user(db, order.buyer_id)
    if buyer is not None and buyer.email:
        return buyer.email
    if addresses is not None and addresses.customer_email:
        return addresses.customer_email
    return None


def _seller_email(db: Session, order: Order) -> Optional[str]:
    seller = user_service.get_user(db, order.seller_id)
    if seller is not None and seller.email:
        return seller.email
    try:
        return user_service.get_preferred_email(seller, auth0_service.get_user(order.seller_id))
    except KadoError as e:
        logger.warning(f"[Email] seller profile unavailable for {order.seller_id}: {e.message}")
        return None


# =============================================================================
# SENDING
# =============================================================================

def _record(db: Session, order_id: str, success: bool, email_type: str, **metadata) -> None:
    log_audit_event(
        db,
        entity_type="Order",
        entity_id=order_id,
        action="EMAIL_SENT" if success else "EMAIL_FAILED",
        metadata={"emailType": email_type, **{k: v for k, v in metadata.items() if v is not None}},
    )
    db.commit()


def _record_failure(db: Session, order_id: str, email_type: str, **metadata) -> None:
    # The failure may have come from the session itself
    try:
        _record(db, order_id, False, email_type, **metadata)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"[Email] could not audit failed {email_type} for order {order_id}: {e}")


def send_order_email(
    db: Session,
    order_id: str,
    email_type: str,
    recipient: str = "buyer",
    extra_context: Optional[Dict[str, Any]] = None,
) -> SendResult:
    template = get_template(email_type)
    try:
        order = db.query(Order).filter(Order.id == order_id).first()
        if order is None:
            _record(db, order_id, False, email_type, reason="order_not_found")
            return SendResult(success=False, error="Order not found")

        addresses = (
            stripe_service.get_order_addresses(order.stripe_session_id)
            if order.stripe_session_id else None
        )
        to = _buyer_email(db, order, addresses) if recipient == "buyer" else _seller_email(db, order)
        if not to:
            _record(db, order_id, False, email_type, reason="missing_customer_email")
            return SendResult(success=False, error="No recipient email for order")

        context = build_order_email_context(order, addresses)
        context.update(extra_context or {})
        rendered = template.render(context)
        message_id = send_email(to, rendered["subject"], rendered["html"], sender=template.sender)
    except EmailDeliveryError as e:
        logger.error(f"[Email] {email_type} for order {order_id} failed: {e.message}")
        _record_failure(db, order_id, email_type, reason=e.reason, error=e.message)
        return SendResult(success=False, error=e.message)
    except Exception as e:
        logger.exception(f"[Email] unexpected error sending {email_type} for order {order_id}")
        db.rollback()
        _record_failure(db, order_id, email_type, reason="unexpected_error", error=str(e))
        return SendResult(success=False, error=str(e))

    _record(db, order_id, True, email_type, messageId=message_id, recipient=recipient)
    logger.info(f"[Email] {email_type} sent for order {order_id}")
    return SendResult(success=True, id=message_id)


def send_order_confirmation_email(db: Session, order_id: str) -> SendResult:
    return send_order_email(db, order_id, "order_confirmation")


def send_seller_order_notification_email(db: Session, order_id: str) -> SendResult:
    return send_order_email(db, order_id, "seller_order_notification", recipient="seller")


def send_order_shipped_email(db: Session, order_id: str) -> SendResult:
    return send_order_email(db, order_id, "order_shipped")


def send_order_in_transit_email(db: Session, order_id: str) -> SendResult:
    return send_order_email(db, order_id, "order_in_transit")


def send_order_delivered_email(db: Session, order_id: str) -> SendResult:
    return send_order_email(db, order_id, "order_delivered")


def send_delivery_exception_email(db: Session, order_id: str, reason: Optional[str] = None) -> SendResult:
    return send_order_email(
        db, order_id, "delivery_exception",
        extra_context={"reason": reason or "Delivery issue detected"},
    )


def send_test_email(to: str) -> SendResult:
    """Sample order confirmation to check Resend configuration."""
    rendered = get_template("order_confirmation").render({
        "order_number": "TEST1234",
        "product_name": "Charizard - Base Set (PSA 9)",
        "subtotal": format_currency(19999),
        "total": format_currency(19999),
        "customer_name": "Test Buyer",
    })
    try:
        message_id = send_email(to, f"[TEST] {rendered['subject']}", rendered["html"], sender="noreply")
    except EmailDeliveryError as e:
        logger.error(f"[Email] test email failed: {e.message}")
        return SendResult(success=False, error=e.message)
    return SendResult(success=True, id=message_id)
