"""
Webhooks Router - Stripe payment events and Shippo tracking events.
Endpoints: /api/webhooks/*
"""
import hmac
import json
from typing import Optional

import stripe
from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.config import get_shippo_webhook_secret, get_stripe_webhook_secret
from app.core.exceptions import AuthenticationError, KadoError, ValidationError
from app.core.logging import get_logger
from app.db.deps import get_db
from app.services import stripe_service, webhook_service

logger = get_logger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="stripe-signature"),
    db: Session = Depends(get_db),
):
    payload = await request.body()
    if not stripe_signature:
        raise ValidationError("Missing stripe-signature header")

    secret = get_stripe_webhook_secret()
    if secret:
        try:
            stripe_service.construct_webhook_event(payload, stripe_signature, secret)
        except (ValueError, stripe.SignatureVerificationError) as e:
            logger.warning(f"Stripe webhook signature verification failed: {e}")
            raise ValidationError(f"Webhook signature verification failed: {e}")
    else:
        logger.warning("STRIPE_WEBHOOK_SECRET not set, processing webhook without verification")

    try:
        event = json.loads(payload)
    except ValueError:
        raise ValidationError("Invalid payload")

    logger.info(f"Stripe webhook received: {event.get('type')}")
    try:
        return webhook_service.handle_stripe_event(db, event)
    except (SQLAlchemyError, stripe.StripeError) as e:
        db.rollback()
        logger.error(f"Stripe webhook processing failed: {e}", error_type=type(e).__name__)
        raise KadoError("Failed to process webhook", status_code=500)


@router.post("/shippo")
async def shippo_webhook(request: Request, token: Optional[str] = None, db: Session = Depends(get_db)):
    secret = get_shippo_webhook_secret()
    if secret and not hmac.compare_digest(token or "", secret):
        logger.warning("Shippo webhook rejected: bad token")
        raise AuthenticationError()

    try:
        payload = await request.json()
    except ValueError:
        raise ValidationError("Invalid payload")

    try:
        return webhook_service.handle_shippo_event(db, payload)
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Shippo webhook processing failed: {e}", error_type=type(e).__name__)
        raise KadoError("Failed to process webhook", status_code=500)


@router.get("/shippo")
def shippo_status():
    return {"service": "Shippo Webhook Handler", "status": "active"}
