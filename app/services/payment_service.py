"""
Payment Service - the single authority for order payment status.

Both the Stripe webhook and the buyer's purchase-success confirmation go
through mark_order_paid(). The order row is re-read under FOR UPDATE, and
every transition is checked against ORDER_STATUS_TRANSITIONS, so concurrent
callers serialize and repeated calls are no-ops.
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from loguru import logger
from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError
from app.models.listing import Listing, ListingStatus
from app.models.order import Order, OrderEvent, OrderEventType, OrderStatus, can_transition
from app.services.audit_service import log_audit_event


@dataclass
class PaymentResult:
    order: Order
    transitioned: bool = False
    already_paid: bool = False
    listing_marked_sold: bool = False


def _lock_order(db: Session, order_id: str) -> Order:
    order = db.query(Order).filter(Order.id == order_id).with_for_update().first()
    if order is None:
        raise NotFoundError("Order not found")
    return order


def mark_order_paid(
    db: Session,
    order_id: str,
    *,
    source: str,
    payment_intent_id: Optional[str] = None,
    user_id: Optional[str] = None,
) -> PaymentResult:
    """
    Move an order PENDING -> PAID and its listing PUBLISHED -> SOLD.

    Commits on success. Calling it again for a paid order only records an
    idempotent audit entry; a cancelled or refunded order is left untouched.
    """
    try:
        order = _lock_order(db, order_id)
        result = PaymentResult(order=order, already_paid=order.status == OrderStatus.PAID.value)
        now = datetime.utcnow()

        if can_transition(order.status, OrderStatus.PAID.value):
            order.status = OrderStatus.PAID.value
            order.paid_at = now
            if payment_intent_id and not order.stripe_payment_intent_id:
                order.stripe_payment_intent_id = payment_intent_id
            db.add(OrderEvent(
                order_id=order.id,
                type=OrderEventType.PAYMENT_RECEIVED.value,
                event_metadata={"source": source, "paymentIntentId": payment_intent_id},
                timestamp=now,
            ))
            result.transitioned = True
        elif not result.already_paid:
            logger.warning(f"[Payment] order {order.id} is {order.status}, not marking paid (source={source})")
            db.commit()
            return result

        if order.listing_id:
            listing = (
                db.query(Listing)
                .filter(Listing.id == order.listing_id)
                .with_for_update()
                .first()
            )
            if listing is not None and listing.status == ListingStatus.PUBLISHED.value:
                listing.status = ListingStatus.SOLD.value
                result.listing_marked_sold = True

        log_audit_event(
            db,
            entity_type="Order",
            entity_id=order.id,
            action="PAYMENT_COMPLETED",
            user_id=user_id or order.buyer_id,
            changes={"status": OrderStatus.PAID.value, "paymentIntentId": order.stripe_payment_intent_id},
            metadata={"idempotent": result.already_paid, "source": source},
        )
        if result.listing_marked_sold:
            log_audit_event(
                db,
                entity_type="Listing",
                entity_id=order.listing_id,
                action="MARKED_SOLD",
                user_id=user_id or order.buyer_id,
                changes={"status": ListingStatus.SOLD.value, "orderId": order.id},
                metadata={"source": source},
            )

        db.commit()
    except Exception:
        db.rollback()
        raise

    if result.transitioned:
        logger.info(f"[Payment] order {order.id} marked PAID via {source}")
    return result


def cancel_order(db: Session, order_id: str, reason: str) -> bool:
    """PENDING -> CANCELLED, e.g. when the checkout session expires."""
    try:
        order = _lock_order(db, order_id)
        if not can_transition(order.status, OrderStatus.CANCELLED.value):
            db.commit()
            return False
        order.status = OrderStatus.CANCELLED.value
        db.add(OrderEvent(
            order_id=order.id,
            type=OrderEventType.ORDER_CANCELLED.value,
            event_metadata={"reason": reason},
        ))
        log_audit_event(db, "Order", order.id, "CANCELLED", metadata={"reason": reason})
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(f"[Payment] order {order_id} cancelled ({reason})")
    return True


def refund_order(db: Session, order_id: str, amount_refunded: Optional[int] = None) -> bool:
    """PAID -> REFUNDED."""
    try:
        order = _lock_order(db, order_id)
        if not can_transition(order.status, OrderStatus.REFUNDED.value):
            db.commit()
            return False
        order.status = OrderStatus.REFUNDED.value
        db.add(OrderEvent(
            order_id=order.id,
            type=OrderEventType.ORDER_REFUNDED.value,
            event_metadata={"amountRefunded": amount_refunded},
        ))
        log_audit_event(
            db, "Order", order.id, "REFUNDED", changes={"amountRefunded": amount_refunded}
        )
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(f"[Payment] order {order_id} refunded")
    return True
