"""
Seller Router - Stripe Connect onboarding and seller listings.
Endpoints: /api/seller/*
"""
from typing import Any, Dict

from fastapi import APIRouter, Body, Depends, Request
from sqlalchemy.orm import Session

from app.core.config import get_base_url
from app.core.security import SessionUser, require_user
from app.db.deps import get_db
from app.services import listing_service, seller_service

router = APIRouter(prefix="/api/seller", tags=["seller"])


@router.post("/onboard")
def onboard(request: Request, user: SessionUser = Depends(require_user), db: Session = Depends(get_db)):
    return seller_service.start_onboarding(db, user, get_base_url(request.headers.get("host")))


@router.get("/status")
def status(user: SessionUser = Depends(require_user), db: Session = Depends(get_db)):
    return seller_service.get_status(db, user.sub)


@router.post("/dashboard-link")
def dashboard_link(user: SessionUser = Depends(require_user), db: Session = Depends(get_db)):
    return seller_service.create_dashboard_link(db, user.sub)


# =============================================================================
# LISTINGS
# =============================================================================

@router.get("/listings")
def my_listings(user: SessionUser = Depends(require_user), db: Session = Depends(get_db)):
    return listing_service.list_seller_listings(db, user.sub)


@router.post("/listings", status_code=201)
def create_listing(
    payload: Dict[str, Any] = Body(...),
    user: SessionUser = Depends(require_user),
    db: Session = Depends(get_db),
):
    listing = listing_service.create_listing(db, user.sub, payload)
    return {"listing": listing.to_api_dict()}


@router.patch("/listings/{listing_id}")
def update_listing(
    listing_id: str,
    payload: Dict[str, Any] = Body(...),
    user: SessionUser = Depends(require_user),
    db: Session = Depends(get_db),
):
    listing = listing_service.update_listing(db, listing_id, user.sub, payload)
    return {"listing": listing.to_api_dict()}
