"""
Listings Router - Public browse, checkout and purchase confirmation.
Endpoints: /api/listings/*
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel, EmailStr
from sqlalchemy.orm import Session

from app.core.config import get_base_url
from app.core.rate_limiter import get_client_ip
from app.core.security import SessionUser, require_user
from app.db.deps import get_db
from app.services import checkout_service, listing_service, media_service
from app.services.checkout_service import RequestContext

router = APIRouter(prefix="/api/listings", tags=["listings"])


class CheckoutIn(BaseModel):
    emailOverride: Optional[EmailStr] = None
    timezone: Optional[str] = None


def request_context(request: Request) -> RequestContext:
    return RequestContext(
        base_url=get_base_url(request.headers.get("host")),
        ip_address=get_client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )


@router.get("")
def browse_listings(
    page: int = Query(1, ge=1),
    per_page: int = Query(24, ge=1, le=100),
    db: Session = Depends(get_db),
):
    return listing_service.browse_listings(db, page=page, per_page=per_page)


@router.get("/upload-signature")
def listing_upload_signature(user: SessionUser = Depends(require_user)):
    return media_service.listing_photo_upload_signature()


@router.post("/{listing_id}/checkout")
def checkout(
    listing_id: str,
    request: Request,
    payload: Optional[CheckoutIn] = None,
    user: SessionUser = Depends(require_user),
    db: Session = Depends(get_db),
):
    payload = payload or CheckoutIn()
    url = checkout_service.create_listing_checkout(
        db,
        listing_id,
        user,
        request_context(request),
        email_override=payload.emailOverride,
        purchase_timezone=payload.timezone,
    )
    return {"url": url}


@router.post("/{listing_id}/purchase/confirm")
def confirm_purchase(
    listing_id: str,
    orderId: str = Query(...),
    user: SessionUser = Depends(require_user),
    db: Session = Depends(get_db),
):
    return checkout_service.confirm_purchase(db, listing_id, orderId, user.sub)


@router.get("/{listing_id}/purchase/success")
def purchase_success(
    listing_id: str,
    orderId: str = Query(...),
    user: SessionUser = Depends(require_user),
    db: Session = Depends(get_db),
):
    return checkout_service.get_purchase(db, listing_id, orderId, user.sub)
