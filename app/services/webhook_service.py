"""
Webhook Service - Stripe payment events and Shippo tracking events.

Payment transitions go through payment_service; tracking updates through
tracking_service. Notification emails are sent only after the state change
is committed.
"""
from typing import Any, Dict, Optional

import stripe
from loguru import logger
from sqlalchemy import desc
from sqlalchemy.orm import Session

from app.core.config import is_production
from app.core.exceptions import ValidationError
from app.models.order import FulfillmentStatus, Order, OrderStatus
from app.services import email_service, payment_service, stripe_service, tracking_service
from app.services.tracking_service import TrackingUpdate

FALLBACK_SCAN_LIMIT = 10


# =============================================================================
# STRIPE
# =============================================================================

def _metadata(obj: Dict[str, Any]) -> Dict[str, Any]:
    return obj.get("metadata") or {}


def _get_order(db: Session, order_id: Optional[str]) -> Optional[Order]:
    if not order_id:
        return None
    return db.query(Order).filter(Order.id == order_id).first()


def _order_for_session(db: Session, session: Dict[str, Any]) -> Optional[Order]:
    order = _get_order(db, _metadata(session).get("orderId"))
    if order is None and session.get("id"):
        order = db.query(Order).filter(Order.stripe_session_id == session["id"]).first()
    return order


def _notify_paid(db: Session, order_id: str) -> None:
    email_service.send_order_confirmation_email(db, order_id)
    email_service.send_seller_order_notification_email(db, order_id)


def handle_checkout_completed(db: Session, session: Dict[str, Any]) -> None:
    order = _order_for_session(db, session)
    if order is None:
        raise ValidationError("Order not found for session")

    totals = session.get("total_details") or {}
    if session.get("amount_total") is not None and order.status == OrderStatus.PENDING.value:
        order.total_cents = session["amount_total"]
        order.tax_cents = totals.get("amount_tax") or 0
        order.shipping_cents = totals.get("amount_shipping") or 0
    if session.get("customer") and not order.stripe_customer_id:
        order.stripe_customer_id = session["customer"]

    result = payment_service.mark_order_paid(
        db,
        order.id,
        source="stripe_webhook",
        payment_intent_id=session.get("payment_intent"),
    )
    if result.transitioned:
        _notify_paid(db, order.id)


def _find_order_for_intent(db: Session, intent: Dict[str, Any]) -> Optional[Order]:
    metadata = _metadata(intent)
    order = _get_order(db, metadata.get("orderId"))
    if order is not None:
        return order

    if metadata.get("sessionId"):
        try:
            session = stripe_service.retrieve_checkout_session(metadata["sessionId"])
            order = _get_order(db, (getattr(session, "metadata", None) or {}).get("orderId"))
        except stripe.StripeError as e:
            logger.warning(f"[Webhook] could not load session {metadata['sessionId']}: {e}")
        if order is not None:
            return order

    order = db.query(Order).filter(Order.stripe_payment_intent_id == intent["id"]).first()
    if order is not None:
        return order

    # Last resort: match the intent against recent pending checkout sessions
    candidates = (
        db.query(Order)
        .filter(Order.status == OrderStatus.PENDING.value, Order.stripe_session_id.isnot(None))
        .order_by(desc(Order.created_at))
        .limit(FALLBACK_SCAN_LIMIT)
        .all()
    )
    for candidate in candidates:
        try:
            session = stripe_service.retrieve_checkout_session(candidate.stripe_session_id)
        except stripe.StripeError as e:
            logger.warning(f"[Webhook] could not load session {candidate.stripe_session_id}: {e}")
            continue
        if getattr(session, "payment_intent", None) == intent["id"]:
            return candidate
    return None


def handle_payment_intent_succeeded(db: Session, intent: Dict[str, Any]) -> None:
    order = _find_order_for_intent(db, intent)
    if order is None:
        logger.warning(f"[Webhook] no order for payment intent {intent.get('id')}")
        return
    if order.status != OrderStatus.PENDING.value:
        return

    result = payment_service.mark_order_paid(
        db, order.id, source="payment_intent_fallback", payment_intent_id=intent.get("id")
    )
    if result.transitioned:
        _notify_paid(db, order.id)


def handle_checkout_expired(db: Session, session: Dict[str, Any]) -> None:
    order = _order_for_session(db, session)
    if order is not None:
        payment_service.cancel_order(db, order.id, reason="checkout_session_expired")


def handle_charge_refunded(db: Session, charge: Dict[str, Any]) -> None:
    if not charge.get("refunded"):
        logger.info(f"[Webhook] partial refund on {charge.get('payment_intent')}, order unchanged")
        return
    order = (
        db.query(Order)
        .filter(Order.stripe_payment_intent_id == charge.get("payment_intent"))
        .first()
    )
    if order is None:
        logger.warning(f"[Webhook] no order for refunded intent {charge.get('payment_intent')}")
        return
    payment_service.refund_order(db, order.id, amount_refunded=charge.get("amount_refunded"))


STRIPE_HANDLERS = {
    "checkout.session.completed": handle_checkout_completed,
    "payment_intent.succeeded": handle_payment_intent_succeeded,
    "checkout.session.expired": handle_checkout_expired,
    "charge.refunded": handle_charge_refunded,
}


def handle_stripe_event(db: Session, event: Dict[str, Any]) -> Dict[str, Any]:
    event_type = event.get("type")
    handler = STRIPE_HANDLERS.get(event_type)
    if handler is None:
        logger.debug(f"[Webhook] ignoring Stripe event {event_type}")
        return {"received": True}

    handler(db, (event.get("data") or {}).get("object") or {})
    return {"received": True}


# =============================================================================
# SHIPPO
# =============================================================================

def handle_shippo_event(db: Session, payload: Dict[str, Any]) -> Dict[str, Any]:
    if payload.get("event") != "track_updated":
        return {"received": True}

    update = TrackingUpdate.from_payload(payload)
    if is_production() and update.is_test:
        logger.info(f"[Webhook] skipping test shipment {update.tracking_number} in production")
        return {"received": True, "skipped": "test shipment"}

    result = tracking_service.apply_tracking_update(db, update)
    if result.order is None:
        logger.warning(f"[Webhook] no order for tracking {update.tracking_number}")
        return {"received": True, "warning": "order not found"}
    if result.new_status is None:
        return {"received": True}
    if not result.applied:
        return {"received": True, "skipped": result.skipped_reason}

    order_id = result.order.id
    if result.new_status == FulfillmentStatus.IN_TRANSIT.value:
        email_service.send_order_in_transit_email(db, order_id)
    elif result.new_status == FulfillmentStatus.DELIVERED.value:
        email_service.send_order_delivered_email(db, order_id)
    elif result.new_status == FulfillmentStatus.EXCEPTION.value:
        email_service.send_delivery_exception_email(db, order_id, update.status_details)

    return {"received": True, "orderId": order_id[-8:], "status": result.new_status}
