"""
Listing Service - seller listings CRUD and public browse.
"""
from typing import Any, Dict, Optional

from loguru import logger
from sqlalchemy import desc
from sqlalchemy.orm import Session

from app.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from app.models.listing import Listing, ListingStatus
from app.services import seller_service, user_service
from app.services.audit_service import log_audit_event

EDITABLE_STATUSES = {ListingStatus.DRAFT.value, ListingStatus.PUBLISHED.value}


def _validate_title(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("displayTitle is required")
    return value.strip()


def _validate_price(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError("askingPriceCents must be a non-negative integer")
    return value


def _validate_currency(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("currency must be a non-empty string")
    return value.strip().upper()


def _optional_text(value: Any, field: str) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    return value.strip() or None


def list_seller_listings(db: Session, seller_id: str) -> Dict[str, Any]:
    listings = (
        db.query(Listing)
        .filter(Listing.seller_id == seller_id)
        .order_by(desc(Listing.created_at))
        .all()
    )
    return {"listings": [l.to_api_dict() for l in listings]}


def create_listing(db: Session, seller_id: str, data: Dict[str, Any]) -> Listing:
    if not seller_service.can_sell(db, seller_id):
        raise ForbiddenError("Seller account is not verified. Complete onboarding before creating listings.")

    user_service.get_or_create_user(db, seller_id)
    listing = Listing(
        seller_id=seller_id,
        display_title=_validate_title(data.get("displayTitle")),
        asking_price_cents=_validate_price(data.get("askingPriceCents")),
        currency=_validate_currency(data.get("currency", "USD")),
        seller_notes=_optional_text(data.get("sellerNotes"), "sellerNotes"),
        image_url=_optional_text(data.get("imageUrl"), "imageUrl"),
        card_id=_optional_text(data.get("cardId"), "cardId"),
        grading_certificate_id=_optional_text(data.get("gradingCertificateId"), "gradingCertificateId"),
        status=ListingStatus.DRAFT.value,
    )
    db.add(listing)
    db.flush()
    log_audit_event(db, "Listing", listing.id, "CREATE", user_id=seller_id,
                    changes={"displayTitle": listing.display_title,
                             "askingPriceCents": listing.asking_price_cents})
    db.commit()
    logger.info(f"[Listings] {seller_id} created listing {listing.id}")
    return listing


def update_listing(db: Session, listing_id: str, seller_id: str, data: Dict[str, Any]) -> Listing:
    listing = db.query(Listing).filter(Listing.id == listing_id).first()
    if listing is None:
        raise NotFoundError("Listing not found")
    if listing.seller_id != seller_id:
        raise ForbiddenError("Forbidden")
    if listing.status == ListingStatus.SOLD.value:
        raise ValidationError("Cannot modify a sold listing")

    updates: Dict[str, Any] = {}
    if "displayTitle" in data:
        updates["display_title"] = _validate_title(data["displayTitle"])
    if "askingPriceCents" in data:
        updates["asking_price_cents"] = _validate_price(data["askingPriceCents"])
    if "currency" in data:
        updates["currency"] = _validate_currency(data["currency"])
    if "sellerNotes" in data:
        updates["seller_notes"] = _optional_text(data["sellerNotes"], "sellerNotes")
    if "imageUrl" in data:
        updates["image_url"] = _optional_text(data["imageUrl"], "imageUrl")
    if "status" in data:
        if data["status"] not in EDITABLE_STATUSES:
            raise ValidationError("status must be DRAFT or PUBLISHED")
        updates["status"] = data["status"]

    if not updates:
        raise ValidationError("No valid fields provided for update")

    for key, value in updates.items():
        setattr(listing, key, value)
    log_audit_event(db, "Listing", listing.id, "UPDATE", user_id=seller_id, changes=updates)
    db.commit()
    return listing


def browse_listings(db: Session, page: int = 1, per_page: int = 24) -> Dict[str, Any]:
    query = db.query(Listing).filter(Listing.status == ListingStatus.PUBLISHED.value)
    total = query.count()
    listings = (
        query
        .order_by(desc(Listing.created_at))
        .offset((page - 1) * per_page)
        .limit(per_page)
        .all()
    )
    return {
        "items": [l.to_api_dict() for l in listings],
        "total": total,
        "page": page,
        "per_page": per_page,
        "pages": (total + per_page - 1) // per_page if per_page > 0 else 0,
    }
