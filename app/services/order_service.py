"""
Order Service - fulfillment and order history.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from loguru import logger
from sqlalchemy import desc
from sqlalchemy.orm import Session

from app.core.config import is_production
from app.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from app.models.order import Order, OrderEvent, OrderEventType, OrderStatus
from app.services import email_service, tracking_service


# =============================================================================
# SHIPPING
# =============================================================================

def ship_order(
    db: Session,
    order_id: str,
    seller_id: str,
    carrier: Optional[str],
    tracking_number: Optional[str],
) -> Dict[str, Any]:
    """
    Mark a paid order as shipped and notify the buyer.

    The shipped state is committed before the email goes out, so the email
    outcome never affects it.
    """
    carrier = (carrier or "").strip()
    tracking_number = (tracking_number or "").strip()
    if not carrier or not tracking_number:
        raise ValidationError("Carrier and tracking number are required")

    if is_production() and tracking_service.is_test_tracking_value(tracking_number):
        raise ValidationError(
            "Test tracking numbers are not allowed in production",
            details="Please enter a real tracking number from your carrier.",
        )

    order = db.query(Order).filter(Order.id == order_id).first()
    if order is None:
        raise NotFoundError("Order not found")
    if order.seller_id != seller_id:
        raise ForbiddenError("Only the seller can mark this order as shipped")
    if order.status != OrderStatus.PAID.value:
        raise ValidationError("Only paid orders can be marked as shipped")
    if order.shipping_carrier or order.tracking_number:
        raise ValidationError(
            "Order already has shipping information",
            carrier=order.shipping_carrier,
            trackingNumber=order.tracking_number,
        )

    order = tracking_service.start_tracking(db, order.id, carrier, tracking_number)

    email_result = email_service.send_order_shipped_email(db, order.id)
    if not email_result.success:
        logger.warning(f"[Orders] shipped email not sent for {order.id}: {email_result.error}")

    return {
        "success": True,
        "order": {
            "id": order.id,
            "carrier": order.shipping_carrier,
            "trackingNumber": order.tracking_number,
            "fulfillmentStatus": order.fulfillment_status,
            "shippedAt": order.shipped_at.isoformat() if order.shipped_at else None,
        },
        "tracking": {
            "trackingNumber": order.tracking_number,
            "carrier": order.shipping_carrier,
        },
        "emailSent": email_result.success,
    }


# =============================================================================
# HISTORY
# =============================================================================

EVENT_TITLES = {
    OrderEventType.ORDER_CREATED.value: "Order placed",
    OrderEventType.PAYMENT_RECEIVED.value: "Payment received",
    OrderEventType.ORDER_SHIPPED.value: "Order shipped",
    OrderEventType.IN_TRANSIT.value: "In transit",
    OrderEventType.OUT_FOR_DELIVERY.value: "Out for delivery",
    OrderEventType.DELIVERED.value: "Delivered",
    OrderEventType.DELIVERY_EXCEPTION.value: "Delivery exception",
    OrderEventType.ORDER_CANCELLED.value: "Order cancelled",
    OrderEventType.ORDER_REFUNDED.value: "Order refunded",
}

EVENT_DESCRIPTIONS = {
    OrderEventType.ORDER_CREATED.value: "Your order has been placed",
    OrderEventType.PAYMENT_RECEIVED.value: "Payment was processed successfully",
    OrderEventType.ORDER_SHIPPED.value: "Your order has been shipped",
    OrderEventType.IN_TRANSIT.value: "Package is in transit",
    OrderEventType.OUT_FOR_DELIVERY.value: "Package is out for delivery",
    OrderEventType.DELIVERED.value: "Package has been delivered",
    OrderEventType.DELIVERY_EXCEPTION.value: "There was an issue with delivery",
    OrderEventType.ORDER_CANCELLED.value: "Order was cancelled",
    OrderEventType.ORDER_REFUNDED.value: "Order was refunded",
}


def describe_event(event_type: str, metadata: Optional[dict]) -> str:
    metadata = metadata or {}
    if event_type == OrderEventType.ORDER_SHIPPED.value:
        if metadata.get("carrier") and metadata.get("trackingNumber"):
            return f"Shipped via {str(metadata['carrier']).upper()} - Tracking: {metadata['trackingNumber']}"
    elif event_type == OrderEventType.IN_TRANSIT.value:
        if metadata.get("status"):
            return f"Package is in transit - {metadata['status']}"
    elif event_type == OrderEventType.DELIVERED.value:
        if metadata.get("message"):
            return metadata["message"]
    elif event_type == OrderEventType.DELIVERY_EXCEPTION.value:
        if metadata.get("reason"):
            return metadata["reason"]
    return EVENT_DESCRIPTIONS.get(event_type, "Order updated")


def _history_entry(entry_id: str, event_type: str, timestamp: datetime, metadata: Optional[dict]) -> Dict[str, Any]:
    return {
        "id": entry_id,
        "type": event_type,
        "title": EVENT_TITLES.get(event_type, "Order updated"),
        "description": describe_event(event_type, metadata),
        "timestamp": timestamp,
    }


def _legacy_history(order: Order) -> List[Dict[str, Any]]:
    """Timeline for orders created before the event log existed."""
    entries = [_history_entry("legacy-created", OrderEventType.ORDER_CREATED.value, order.created_at, None)]

    was_paid = order.paid_at is not None or order.status in (OrderStatus.PAID.value, OrderStatus.REFUNDED.value)
    if was_paid:
        entries.append(_history_entry(
            "legacy-paid", OrderEventType.PAYMENT_RECEIVED.value, order.paid_at or order.created_at, None
        ))
    if order.shipped_at:
        entries.append(_history_entry(
            "legacy-shipped",
            OrderEventType.ORDER_SHIPPED.value,
            order.shipped_at,
            {"carrier": order.shipping_carrier, "trackingNumber": order.tracking_number},
        ))
    if order.delivered_at:
        entries.append(_history_entry(
            "legacy-delivered", OrderEventType.DELIVERED.value, order.delivered_at, None
        ))
    return entries


def build_order_history(order: Order, events: List[OrderEvent]) -> List[Dict[str, Any]]:
    """Chronological (ascending) display timeline for an order."""
    if events:
        entries = [
            _history_entry(event.id, event.type, event.timestamp, event.event_metadata)
            for event in events
        ]
    else:
        entries = _legacy_history(order)
    return sorted(entries, key=lambda entry: entry["timestamp"])


def serialize_history(entries: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [{**entry, "timestamp": entry["timestamp"].isoformat()} for entry in entries]


# =============================================================================
# QUERIES
# =============================================================================

def get_order_for_participant(db: Session, order_id: str, user_id: str) -> Order:
    order = db.query(Order).filter(Order.id == order_id).first()
    if order is None:
        raise NotFoundError("Order not found")
    if user_id not in (order.buyer_id, order.seller_id):
        raise ForbiddenError("You do not have access to this order")
    return order


def get_order_detail(db: Session, order_id: str, user_id: str) -> Dict[str, Any]:
    order = get_order_for_participant(db, order_id, user_id)
    history = build_order_history(order, list(order.events))
    return {
        "order": order.to_api_dict(),
        "role": "buyer" if order.buyer_id == user_id else "seller",
        "history": serialize_history(history),
    }


def list_orders(db: Session, user_id: str, role: str = "buyer", page: int = 1, per_page: int = 20) -> Dict[str, Any]:
    column = Order.buyer_id if role == "buyer" else Order.seller_id
    query = db.query(Order).filter(column == user_id)
    if role == "seller":
        # Unpaid checkouts are not sales yet
        query = query.filter(Order.status != OrderStatus.PENDING.value)

    total = query.count()
    orders = (
        query
        .order_by(desc(Order.created_at))
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return {
        "items": [o.to_api_dict() for o in orders],
        "total": total,
        "page": page,
        "per_page": per_page,
        "pages": (total + per_page - 1) // per_page if per_page > 0 else 0,
    }
