import json

import pytest

from app.models.order import is_stale_fulfillment_update
from app.services.tracking_service import TrackingUpdate, is_test_tracking_value, map_shippo_status


@pytest.mark.parametrize("shippo_status, expected", [
    ("DELIVERED", "DELIVERED"),
    ("transit", "IN_TRANSIT"),
    ("OUT_FOR_DELIVERY", "OUT_FOR_DELIVERY"),
    ("RETURNED", "EXCEPTION"),
    ("FAILURE", "EXCEPTION"),
    ("UNKNOWN", "EXCEPTION"),
    ("PRE_TRANSIT", "PROCESSING"),
    ("SOMETHING_ELSE", None),
    (None, None),
])
def test_map_shippo_status(shippo_status, expected):
    assert map_shippo_status(shippo_status) == expected


@pytest.mark.parametrize("value, expected", [
    ("SHIPPO_DELIVERED", True),
    ("shippo_transit", True),
    ("test-returned", True),
    (" TEST-DELIVERED ", True),
    ("9400111899223847562013", False),
])
def test_is_test_tracking_value(value, expected):
    assert is_test_tracking_value(value) is expected


@pytest.mark.parametrize("current, new, expected", [
    ("SHIPPED", "IN_TRANSIT", False),
    ("DELIVERED", "IN_TRANSIT", True),
    ("OUT_FOR_DELIVERY", "PROCESSING", True),
    ("DELIVERED", "EXCEPTION", False),
    ("EXCEPTION", "IN_TRANSIT", False),
    ("IN_TRANSIT", "IN_TRANSIT", True),
    ("DELIVERED", "DELIVERED", True),
    ("EXCEPTION", "EXCEPTION", False),
    (None, "IN_TRANSIT", False),
])
def test_fulfillment_never_repeats_or_moves_backwards(current, new, expected):
    assert is_stale_fulfillment_update(current, new) is expected


def test_tracking_update_parses_string_metadata():
    update = TrackingUpdate.from_payload({
        "event": "track_updated",
        "data": {
            "tracking_number": "SHIPPO_DELIVERED",
            "carrier": "shippo",
            "tracking_status": {"status": "DELIVERED", "status_details": "Delivered"},
            "metadata": json.dumps({"originalTrackingNumber": "test-delivered", "originalCarrier": "usps", "isTest": True}),
        },
    })

    assert update.is_test is True
    assert update.lookup_tracking_number == "test-delivered"
    assert update.lookup_carrier == "usps"
    assert update.shippo_status == "DELIVERED"


def test_tracking_update_tolerates_bad_metadata():
    update = TrackingUpdate.from_payload({
        "test": False,
        "data": {"tracking_number": "9400", "carrier": "usps", "metadata": "not json"},
    })

    assert update.metadata == {}
    assert update.is_test is False
    assert update.lookup_tracking_number == "9400"
