"""
Checkout Service - listing purchase via Stripe Checkout.

Flow:
1. create_listing_checkout(): PENDING order + Stripe Checkout Session
2. Stripe redirects the buyer to /listings/<id>/purchase/success
3. confirm_purchase() (buyer) and the checkout.session.completed webhook
   both hand off to payment_service.mark_order_paid()
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import quote

import stripe
from loguru import logger
from sqlalchemy.orm import Session

from app.core.config import is_production
from app.core.exceptions import (
    NotFoundError,
    PreconditionRequiredError,
    UpstreamError,
    ValidationError,
)
from app.core.logging import get_logger, timed
from app.core.security import SessionUser
from app.models.listing import Listing
from app.models.order import Order, OrderEvent, OrderEventType, OrderStatus
from app.services import payment_service, stripe_service, user_service
from app.services.audit_service import log_audit_event

perf_logger = get_logger(__name__)


@dataclass
class RequestContext:
    base_url: str
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


def _load_purchasable_listing(db: Session, listing_id: str, buyer_id: str) -> Listing:
    listing = db.query(Listing).filter(Listing.id == listing_id).first()
    if listing is None:
        raise NotFoundError("Listing not found")
    if not listing.is_purchasable:
        raise ValidationError("Listing is not available for purchase")
    if listing.seller_id == buyer_id:
        raise ValidationError("You cannot purchase your own listing")
    return listing


@timed(perf_logger)
def create_listing_checkout(
    db: Session,
    listing_id: str,
    session_user: SessionUser,
    context: RequestContext,
    email_override: Optional[str] = None,
    purchase_timezone: Optional[str] = None,
) -> str:
    """Create a PENDING order for the listing and return the Stripe Checkout URL."""
    listing = _load_purchasable_listing(db, listing_id, session_user.sub)

    buyer, auth0_profile = user_service.get_or_create_user(db, session_user.sub)
    email = user_service.get_preferred_email(
        buyer, auth0_profile, session_user.email or email_override
    )
    if not email:
        db.rollback()
        raise PreconditionRequiredError("User email required", code="EMAIL_REQUIRED")

    seller = user_service.get_user(db, listing.seller_id)
    description = f"Listing purchase - {listing.display_title}"

    order = Order(
        buyer_id=buyer.id,
        seller_id=listing.seller_id,
        seller_name=seller.display_name if seller else None,
        description=description,
        listing_id=listing.id,
        subtotal_cents=listing.asking_price_cents,
        total_cents=listing.asking_price_cents,
        currency=listing.currency,
        status=OrderStatus.PENDING.value,
        is_test_payment=not is_production(),
        purchase_timezone=purchase_timezone,
        snapshot_listing_display_title=listing.display_title,
        snapshot_listing_image_url=listing.image_url,
        snapshot_listing_price_cents=listing.asking_price_cents,
    )
    db.add(order)
    db.flush()

    db.add(OrderEvent(
        order_id=order.id,
        type=OrderEventType.ORDER_CREATED.value,
        event_metadata={"listingId": listing.id, "subtotalCents": listing.asking_price_cents},
    ))
    log_audit_event(
        db,
        entity_type="Order",
        entity_id=order.id,
        action="CREATE",
        user_id=buyer.id,
        changes={
            "orderId": order.id,
            "listingId": listing.id,
            "subtotalCents": listing.asking_price_cents,
        },
        ip_address=context.ip_address,
        user_agent=context.user_agent,
    )
    db.commit()

    try:
        customer_id = stripe_service.get_or_create_customer(db, buyer, email)
        session = stripe_service.create_checkout_session(
            customer_id=customer_id,
            order_id=order.id,
            buyer_id=buyer.id,
            listing_id=listing.id,
            product_name=listing.display_title,
            description=description,
            unit_amount=listing.asking_price_cents,
            currency=listing.currency,
            image_url=listing.image_url,
            success_url=(
                f"{context.base_url}/listings/{listing.id}/purchase/success"
                f"?orderId={order.id}&session_id={{CHECKOUT_SESSION_ID}}"
            ),
            cancel_url=f"{context.base_url}/seller/{quote(listing.seller_id, safe='')}/listings",
        )
    except stripe.StripeError as e:
        db.rollback()
        logger.error(f"[Checkout] Stripe error for order {order.id}: {e}")
        raise UpstreamError(f"Stripe error: {getattr(e, 'user_message', None) or str(e)}", service="stripe")

    order.stripe_session_id = session.id
    order.stripe_customer_id = customer_id
    db.commit()

    logger.info(f"[Checkout] order {order.id} created for listing {listing.id}, session {session.id}")
    return session.url


def _load_buyer_order(db: Session, listing_id: str, order_id: str, buyer_id: str) -> Order:
    order = db.query(Order).filter(Order.id == order_id).first()
    if order is None or order.buyer_id != buyer_id or order.listing_id != listing_id:
        raise NotFoundError("Order not found")
    return order


def confirm_purchase(db: Session, listing_id: str, order_id: str, buyer_id: str) -> Dict[str, Any]:
    """
    Buyer-side confirmation after the Stripe redirect.

    Delegates to mark_order_paid so it cannot race the webhook into a
    double transition.
    """
    _load_buyer_order(db, listing_id, order_id, buyer_id)
    result = payment_service.mark_order_paid(
        db, order_id, source="purchase_confirmation", user_id=buyer_id
    )
    return {
        "success": True,
        "alreadyPaid": result.already_paid,
        "order": purchase_summary(result.order),
    }


def get_purchase(db: Session, listing_id: str, order_id: str, buyer_id: str) -> Dict[str, Any]:
    return {"order": purchase_summary(_load_buyer_order(db, listing_id, order_id, buyer_id))}


def purchase_summary(order: Order) -> Dict[str, Any]:
    return {
        "id": order.id,
        "orderNumber": order.order_number,
        "status": order.status,
        "fulfillmentStatus": order.fulfillment_status,
        "displayTitle": order.snapshot_listing_display_title,
        "imageUrl": order.snapshot_listing_image_url,
        "priceCents": order.snapshot_listing_price_cents,
        "totalCents": order.total_cents,
        "currency": order.currency,
    }
