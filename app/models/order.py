"""
Order and OrderEvent models.

An Order is created PENDING at checkout and carries a snapshot of the listing
(title, image, price) so its display stays stable if the listing changes.
OrderEvent rows are an append-only timeline per order.
"""
import enum
from datetime import datetime
from typing import Optional, List

from sqlalchemy import String, Integer, Boolean, DateTime, ForeignKey, Index, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.user import Base, generate_id


class OrderStatus(str, enum.Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    CANCELLED = "CANCELLED"
    REFUNDED = "REFUNDED"


# Payment status only moves forward
ORDER_STATUS_TRANSITIONS = {
    OrderStatus.PENDING.value: {OrderStatus.PAID.value, OrderStatus.CANCELLED.value},
    OrderStatus.PAID.value: {OrderStatus.REFUNDED.value},
    OrderStatus.CANCELLED.value: set(),
    OrderStatus.REFUNDED.value: set(),
}


class FulfillmentStatus(str, enum.Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    SHIPPED = "SHIPPED"
    IN_TRANSIT = "IN_TRANSIT"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    EXCEPTION = "EXCEPTION"


# Forward order of fulfillment. EXCEPTION sits outside and can always be applied.
FULFILLMENT_PROGRESSION = [
    FulfillmentStatus.PENDING.value,
    FulfillmentStatus.PROCESSING.value,
    FulfillmentStatus.SHIPPED.value,
    FulfillmentStatus.IN_TRANSIT.value,
    FulfillmentStatus.OUT_FOR_DELIVERY.value,
    FulfillmentStatus.DELIVERED.value,
]


class OrderEventType(str, enum.Enum):
    ORDER_CREATED = "ORDER_CREATED"
    PAYMENT_RECEIVED = "PAYMENT_RECEIVED"
    ORDER_SHIPPED = "ORDER_SHIPPED"
    IN_TRANSIT = "IN_TRANSIT"
    OUT_FOR_DELIVERY = "OUT_FOR_DELIVERY"
    DELIVERED = "DELIVERED"
    DELIVERY_EXCEPTION = "DELIVERY_EXCEPTION"
    ORDER_CANCELLED = "ORDER_CANCELLED"
    ORDER_REFUNDED = "ORDER_REFUNDED"


def can_transition(current: str, new: str) -> bool:
    return new in ORDER_STATUS_TRANSITIONS.get(current, set())


def is_stale_fulfillment_update(current: Optional[str], new: str) -> bool:
    """True when `new` would repeat or move back from `current`. EXCEPTION always applies."""
    if new == FulfillmentStatus.EXCEPTION.value or current not in FULFILLMENT_PROGRESSION:
        return False
    return FULFILLMENT_PROGRESSION.index(new) <= FULFILLMENT_PROGRESSION.index(current)


class Order(Base):
    __tablename__ = "orders"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=generate_id)
    buyer_id: Mapped[str] = mapped_column(String(255), ForeignKey("users.id"), nullable=False)
    seller_id: Mapped[str] = mapped_column(String(255), ForeignKey("users.id"), nullable=False)
    seller_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    listing_id: Mapped[Optional[str]] = mapped_column(String(32), ForeignKey("listings.id"), nullable=True)

    # Listing snapshot at purchase time
    snapshot_listing_display_title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    snapshot_listing_image_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    snapshot_listing_price_cents: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    status: Mapped[str] = mapped_column(String(20), default=OrderStatus.PENDING.value, nullable=False)
    fulfillment_status: Mapped[str] = mapped_column(
        String(20), default=FulfillmentStatus.PENDING.value, nullable=False
    )

    # Amounts in minor units
    subtotal_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    tax_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    shipping_cents: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    total_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="USD", nullable=False)

    is_test_payment: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    purchase_timezone: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    stripe_session_id: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)
    stripe_payment_intent_id: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)
    stripe_customer_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    shipping_carrier: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    tracking_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    tracking_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    shipped_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    events: Mapped[List["OrderEvent"]] = relationship(
        back_populates="order", order_by="OrderEvent.timestamp", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("ix_orders_buyer", "buyer_id", "created_at"),
        Index("ix_orders_seller", "seller_id", "created_at"),
        Index("ix_orders_tracking", "tracking_number", "shipping_carrier"),
        Index("ix_orders_status", "status"),
    )

    @property
    def order_number(self) -> str:
        return self.id[-8:].upper()

    def to_api_dict(self) -> dict:
        return {
            "id": self.id,
            "orderNumber": self.order_number,
            "buyerId": self.buyer_id,
            "sellerId": self.seller_id,
            "sellerName": self.seller_name,
            "listingId": self.listing_id,
            "description": self.description,
            "status": self.status,
            "fulfillmentStatus": self.fulfillment_status,
            "subtotalCents": self.subtotal_cents,
            "taxCents": self.tax_cents,
            "shippingCents": self.shipping_cents,
            "totalCents": self.total_cents,
            "currency": self.currency,
            "isTestPayment": self.is_test_payment,
            "snapshot": {
                "displayTitle": self.snapshot_listing_display_title,
                "imageUrl": self.snapshot_listing_image_url,
                "priceCents": self.snapshot_listing_price_cents,
            },
            "carrier": self.shipping_carrier,
            "trackingNumber": self.tracking_number,
            "paidAt": self.paid_at.isoformat() if self.paid_at else None,
            "shippedAt": self.shipped_at.isoformat() if self.shipped_at else None,
            "deliveredAt": self.delivered_at.isoformat() if self.delivered_at else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


class OrderEvent(Base):
    __tablename__ = "order_events"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=generate_id)
    order_id: Mapped[str] = mapped_column(String(32), ForeignKey("orders.id"), nullable=False)
    type: Mapped[str] = mapped_column(String(32), nullable=False)
    # "metadata" is reserved on declarative classes
    event_metadata: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    order: Mapped[Order] = relationship(back_populates="events")

    __table_args__ = (
        Index("ix_order_events_order_ts", "order_id", "timestamp"),
    )
