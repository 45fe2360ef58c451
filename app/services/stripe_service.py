"""
Stripe Service - payments, customers and Connect accounts.

Configuration (environment variables, _PROD / _STAGING suffixed):
- STRIPE_SECRET_KEY: API secret key
- STRIPE_WEBHOOK_SECRET: signing secret for /api/webhooks/stripe (optional)
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional

import stripe
from loguru import logger
from sqlalchemy.orm import Session

from app.core.config import get_stripe_secret_key
from app.models.user import User

GENERAL_TAX_CODE = "txcd_99999999"
SHIPPING_COUNTRIES = ["US"]


def _client() -> Any:
    stripe.api_key = get_stripe_secret_key()
    return stripe


# =============================================================================
# CUSTOMERS
# =============================================================================

def get_or_create_customer(db: Session, user: User, email: str) -> str:
    """
    Return the buyer's Stripe customer id.

    A stored id is verified first; a deleted or unknown customer is replaced.
    """
    client = _client()

    if user.stripe_customer_id:
        try:
            customer = client.Customer.retrieve(user.stripe_customer_id)
            if not getattr(customer, "deleted", False):
                return customer.id
            logger.warning(f"[Stripe] customer {user.stripe_customer_id} was deleted, recreating")
        except stripe.InvalidRequestError as e:
            logger.warning(f"[Stripe] customer {user.stripe_customer_id} not retrievable: {e}")

    customer = client.Customer.create(
        email=email,
        name=user.display_name or None,
        metadata={"userId": user.id},
    )
    user.stripe_customer_id = customer.id
    db.flush()
    logger.info(f"[Stripe] created customer {customer.id} for {user.id}")
    return customer.id


# =============================================================================
# CHECKOUT
# =============================================================================

def create_checkout_session(
    *,
    customer_id: str,
    order_id: str,
    buyer_id: str,
    listing_id: str,
    product_name: str,
    description: str,
    unit_amount: int,
    currency: str,
    success_url: str,
    cancel_url: str,
    image_url: Optional[str] = None,
) -> Any:
    metadata = {"orderId": order_id, "buyerId": buyer_id, "listingId": listing_id}
    product_data: Dict[str, Any] = {"name": product_name, "tax_code": GENERAL_TAX_CODE}
    if image_url:
        product_data["images"] = [image_url]

    return _client().checkout.Session.create(
        customer=customer_id,
        mode="payment",
        payment_method_types=["card"],
        line_items=[
            {
                "price_data": {
                    "currency": currency.lower(),
                    "product_data": product_data,
                    "unit_amount": unit_amount,
                },
                "quantity": 1,
            }
        ],
        shipping_address_collection={"allowed_countries": SHIPPING_COUNTRIES},
        customer_update={"shipping": "auto", "address": "auto"},
        payment_intent_data={"description": description, "metadata": metadata},
        metadata=metadata,
        success_url=success_url,
        cancel_url=cancel_url,
    )


def retrieve_checkout_session(session_id: str) -> Any:
    return _client().checkout.Session.retrieve(session_id)


def construct_webhook_event(payload: bytes, signature: str, secret: str) -> Any:
    """Verify a webhook signature. Raises stripe.SignatureVerificationError."""
    return stripe.Webhook.construct_event(payload, signature, secret)


@dataclass
class OrderAddresses:
    customer_email: Optional[str] = None
    customer_name: Optional[str] = None
    shipping_address: Optional[Dict[str, Any]] = None
    billing_address: Optional[Dict[str, Any]] = None


def _address_dict(address: Any) -> Optional[Dict[str, Any]]:
    if not address:
        return None
    return {
        key: getattr(address, key, None)
        for key in ("line1", "line2", "city", "state", "postal_code", "country")
    }


def get_order_addresses(session_id: str) -> Optional[OrderAddresses]:
    """Customer contact and addresses captured by a Checkout Session."""
    try:
        session = retrieve_checkout_session(session_id)
    except stripe.StripeError as e:
        logger.warning(f"[Stripe] could not load session {session_id}: {e}")
        return None

    details = getattr(session, "customer_details", None)
    shipping = getattr(session, "shipping_details", None) or getattr(
        getattr(session, "collected_information", None), "shipping_details", None
    )
    return OrderAddresses(
        customer_email=getattr(details, "email", None),
        customer_name=getattr(shipping, "name", None) or getattr(details, "name", None),
        shipping_address=_address_dict(getattr(shipping, "address", None)),
        billing_address=_address_dict(getattr(details, "address", None)),
    )


# =============================================================================
# CONNECT (SELLERS)
# =============================================================================

def create_connect_account(email: str, user_id: str) -> Any:
    return _client().Account.create(
        type="express",
        country="US",
        email=email,
        capabilities={
            "card_payments": {"requested": True},
            "transfers": {"requested": True},
        },
        metadata={"userId": user_id},
    )


def create_account_link(account_id: str, base_url: str) -> Any:
    return _client().AccountLink.create(
        account=account_id,
        refresh_url=f"{base_url}/account/seller?refresh=true",
        return_url=f"{base_url}/account/seller?return=true",
        type="account_onboarding",
    )


def retrieve_account(account_id: str) -> Any:
    return _client().Account.retrieve(account_id)


def create_login_link(account_id: str) -> Any:
    return _client().Account.create_login_link(account_id)


def is_account_verified(account: Any) -> bool:
    return bool(getattr(account, "charges_enabled", False) and getattr(account, "payouts_enabled", False))


def account_status(account: Any) -> str:
    if is_account_verified(account):
        return "verified"
    if getattr(account, "details_submitted", False):
        return "pending_verification"
    return "incomplete"
