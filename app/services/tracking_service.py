"""
Tracking Service - shipment tracking through Shippo.

Configuration (environment variables, _PROD / _STAGING suffixed):
- SHIPPO_API_TOKEN: API token (ShippoToken auth)
- SHIPPO_WEBHOOK_SECRET: shared token expected on track_updated webhooks

In staging, sellers can enter a scenario key (test-delivered,
test-in-transit, test-returned) instead of a real tracking number; it is
registered against Shippo's test carrier so webhooks fire with that outcome.
"""
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

import httpx
from loguru import logger
from sqlalchemy.orm import Session

from app.core.config import SHIPPO_API_BASE, detect_runtime_environment, get_shippo_token
from app.core.exceptions import NotFoundError, UpstreamError
from app.models.order import (
    FulfillmentStatus,
    Order,
    OrderEvent,
    OrderEventType,
    is_stale_fulfillment_update,
)

HTTP_TIMEOUT = 15.0

SUPPORTED_CARRIERS = {
    "usps": "USPS",
    "ups": "UPS",
    "fedex": "FedEx",
    "dhl_express": "DHL Express",
}

# Scenario key -> Shippo test tracking number
TEST_TRACKING_NUMBERS = {
    "test-delivered": "SHIPPO_DELIVERED",
    "test-in-transit": "SHIPPO_TRANSIT",
    "test-returned": "SHIPPO_RETURNED",
}

TEST_SCENARIOS = {
    "test-delivered": "Package delivered successfully",
    "test-in-transit": "Package in transit",
    "test-returned": "Package returned to sender",
}

RESERVED_TEST_VALUES = set(TEST_TRACKING_NUMBERS.values())
TEST_CARRIER = "shippo"

SHIPPO_STATUS_MAP = {
    "DELIVERED": FulfillmentStatus.DELIVERED.value,
    "TRANSIT": FulfillmentStatus.IN_TRANSIT.value,
    "OUT_FOR_DELIVERY": FulfillmentStatus.OUT_FOR_DELIVERY.value,
    "RETURNED": FulfillmentStatus.EXCEPTION.value,
    "FAILURE": FulfillmentStatus.EXCEPTION.value,
    "UNKNOWN": FulfillmentStatus.EXCEPTION.value,
    "PRE_TRANSIT": FulfillmentStatus.PROCESSING.value,
}

STATUS_EVENT_TYPES = {
    FulfillmentStatus.IN_TRANSIT.value: OrderEventType.IN_TRANSIT.value,
    FulfillmentStatus.OUT_FOR_DELIVERY.value: OrderEventType.OUT_FOR_DELIVERY.value,
    FulfillmentStatus.DELIVERED.value: OrderEventType.DELIVERED.value,
    FulfillmentStatus.EXCEPTION.value: OrderEventType.DELIVERY_EXCEPTION.value,
}


def map_shippo_status(status: Optional[str]) -> Optional[str]:
    if not status:
        return None
    return SHIPPO_STATUS_MAP.get(status.upper())


def is_test_tracking_value(tracking_number: str) -> bool:
    value = tracking_number.strip()
    return value.upper() in RESERVED_TEST_VALUES or value.lower() in TEST_TRACKING_NUMBERS


@dataclass
class TrackingRegistration:
    tracking_id: Optional[str]
    tracking_number: str
    carrier: str
    is_test: bool
    status: Optional[str] = None


def _resolve_shippo_target(carrier: str, tracking_number: str, environment: str):
    """Return (shippo_carrier, shippo_tracking_number, is_test)."""
    scenario = tracking_number.strip().lower()
    if environment != "prod" and scenario in TEST_TRACKING_NUMBERS:
        return TEST_CARRIER, TEST_TRACKING_NUMBERS[scenario], True
    if environment != "prod" and tracking_number.strip().upper() in RESERVED_TEST_VALUES:
        return TEST_CARRIER, tracking_number.strip().upper(), True
    return carrier, tracking_number.strip(), False


def register_tracking(
    order_id: str,
    carrier: str,
    tracking_number: str,
    environment: str,
) -> TrackingRegistration:
    """Register a tracking number with Shippo so it pushes track_updated webhooks."""
    shippo_carrier, shippo_number, is_test = _resolve_shippo_target(carrier, tracking_number, environment)
    metadata = json.dumps({
        "environment": environment,
        "orderId": order_id,
        "isTest": is_test,
        "originalTrackingNumber": tracking_number,
        "originalCarrier": carrier,
    })

    try:
        response = httpx.post(
            f"{SHIPPO_API_BASE}/tracks/",
            headers={"Authorization": f"ShippoToken {get_shippo_token()}"},
            json={"carrier": shippo_carrier, "tracking_number": shippo_number, "metadata": metadata},
            timeout=HTTP_TIMEOUT,
        )
    except httpx.HTTPError as e:
        logger.error(f"[Tracking] Shippo unreachable for order {order_id}: {e}")
        raise UpstreamError(f"Failed to register tracking: {e}", service="shippo")

    if response.status_code >= 400:
        logger.error(f"[Tracking] Shippo rejected tracking for order {order_id}: {response.text}")
        raise UpstreamError(f"Failed to register tracking: {response.text}", service="shippo")

    data = response.json()
    tracking_status = data.get("tracking_status") or {}
    return TrackingRegistration(
        tracking_id=data.get("object_id") or data.get("tracking_number"),
        tracking_number=shippo_number,
        carrier=shippo_carrier,
        is_test=is_test,
        status=tracking_status.get("status"),
    )


def start_tracking(db: Session, order_id: str, carrier: str, tracking_number: str) -> Order:
    """
    Register tracking and mark the order SHIPPED.

    Shippo is called first; the order is only updated when registration
    succeeds. The carrier and number are stored as the seller entered them.
    """
    order = db.query(Order).filter(Order.id == order_id).first()
    if order is None:
        raise NotFoundError("Order not found")

    environment = detect_runtime_environment().env
    registration = register_tracking(order_id, carrier, tracking_number, environment)

    now = datetime.utcnow()
    try:
        order.shipping_carrier = carrier
        order.tracking_number = tracking_number
        order.tracking_id = registration.tracking_id
        order.fulfillment_status = FulfillmentStatus.SHIPPED.value
        order.shipped_at = now
        db.add(OrderEvent(
            order_id=order.id,
            type=OrderEventType.ORDER_SHIPPED.value,
            event_metadata={
                "carrier": carrier,
                "trackingNumber": tracking_number,
                "shippoTrackingId": registration.tracking_id,
            },
            timestamp=now,
        ))
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info(f"[Tracking] order {order.id} shipped via {carrier} ({'test' if registration.is_test else 'live'})")
    return order


# =============================================================================
# WEBHOOK UPDATES
# =============================================================================

@dataclass
class TrackingUpdate:
    tracking_number: str
    carrier: Optional[str]
    shippo_status: Optional[str]
    status_details: Optional[str]
    status_date: Optional[str]
    metadata: Dict[str, Any]
    is_test: bool

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "TrackingUpdate":
        data = payload.get("data") or {}
        tracking_status = data.get("tracking_status") or {}
        raw_metadata = data.get("metadata") or {}
        if isinstance(raw_metadata, str):
            try:
                raw_metadata = json.loads(raw_metadata)
            except ValueError:
                raw_metadata = {}
        return cls(
            tracking_number=data.get("tracking_number") or "",
            carrier=data.get("carrier"),
            shippo_status=tracking_status.get("status"),
            status_details=tracking_status.get("status_details"),
            status_date=tracking_status.get("status_date"),
            metadata=raw_metadata,
            is_test=bool(payload.get("test") or raw_metadata.get("isTest")),
        )

    @property
    def lookup_tracking_number(self) -> str:
        return self.metadata.get("originalTrackingNumber") or self.tracking_number

    @property
    def lookup_carrier(self) -> Optional[str]:
        return self.metadata.get("originalCarrier") or self.carrier


@dataclass
class TrackingUpdateResult:
    order: Optional[Order] = None
    new_status: Optional[str] = None
    applied: bool = False
    skipped_reason: Optional[str] = None


def find_order_for_update(db: Session, update: TrackingUpdate) -> Optional[Order]:
    query = db.query(Order).filter(Order.tracking_number == update.lookup_tracking_number)
    if update.lookup_carrier:
        query = query.filter(Order.shipping_carrier == update.lookup_carrier)
    return query.first()


def apply_tracking_update(db: Session, update: TrackingUpdate) -> TrackingUpdateResult:
    """Apply a Shippo status to the matching order. Never repeats or moves fulfillment backwards."""
    result = TrackingUpdateResult()
    order = find_order_for_update(db, update)
    if order is None:
        result.skipped_reason = "order not found"
        return result
    result.order = order

    new_status = map_shippo_status(update.shippo_status)
    if new_status is None:
        result.skipped_reason = "unknown status"
        return result
    result.new_status = new_status

    if is_stale_fulfillment_update(order.fulfillment_status, new_status):
        result.skipped_reason = "status downgrade prevented"
        return result

    now = datetime.utcnow()
    try:
        order.fulfillment_status = new_status
        if new_status == FulfillmentStatus.DELIVERED.value and order.delivered_at is None:
            order.delivered_at = now

        event_type = STATUS_EVENT_TYPES.get(new_status)
        if event_type:
            event_metadata = {
                "status": update.shippo_status,
                "statusDetails": update.status_details,
                "statusDate": update.status_date,
                "trackingNumber": update.tracking_number,
                "carrier": update.carrier,
            }
            if new_status == FulfillmentStatus.DELIVERED.value:
                event_metadata["message"] = update.status_details or "Package delivered"
            if new_status == FulfillmentStatus.EXCEPTION.value:
                event_metadata["reason"] = update.status_details or "Delivery issue detected"
            db.add(OrderEvent(
                order_id=order.id,
                type=event_type,
                event_metadata=event_metadata,
                timestamp=now,
            ))
        db.commit()
    except Exception:
        db.rollback()
        raise

    result.applied = True
    logger.info(f"[Tracking] order {order.id} -> {new_status}")
    return result
