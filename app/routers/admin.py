"""
Admin Router - Administration endpoints.
Endpoints: /api/admin/*
"""
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, EmailStr, Field
from sqlalchemy.orm import Session

from app.core.exceptions import ForbiddenError, ValidationError
from app.core.logging import get_logger
from app.core.security import SessionUser, get_session_user, require_user
from app.db.deps import get_db
from app.services import admin_service, email_service, invitation_service, sales_data_service

logger = get_logger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"])


def get_current_admin(user: SessionUser = Depends(require_user)) -> SessionUser:
    """Session user with the admin role, else 403."""
    if not admin_service.is_admin(user.sub):
        logger.warning("Admin access denied", user_id=user.sub)
        raise ForbiddenError("Admin access required")
    return user


# =============================================================================
# SCHEMAS
# =============================================================================

class GenerateCodesIn(BaseModel):
    count: int = 1


class SalesDataIn(BaseModel):
    gradingCompany: str = "PSA"
    value: float
    date: datetime
    certNumber: Optional[str] = None
    psaApiResponse: Optional[Dict[str, Any]] = None
    apiResponse: Optional[Dict[str, Any]] = None
    isAuction: bool = False
    imageUrl: Optional[str] = None
    title: Optional[str] = None
    source: Optional[str] = None
    sourceId: Optional[str] = None
    cardName: Optional[str] = None
    setName: Optional[str] = None
    cardNumber: Optional[str] = None
    variety: Optional[str] = None
    specId: Optional[str] = None


class TestEmailIn(BaseModel):
    to: EmailStr = Field(...)


# =============================================================================
# ROUTES
# =============================================================================

@router.get("/check")
def check_admin(request: Request):
    session_user = get_session_user(request)
    if session_user is None:
        return {"isAdmin": False}
    return {"isAdmin": admin_service.is_admin(session_user.sub)}


@router.get("/invitation-codes")
def list_invitation_codes(admin: SessionUser = Depends(get_current_admin), db: Session = Depends(get_db)):
    return invitation_service.list_codes(db)


@router.post("/invitation-codes")
def generate_invitation_codes(
    payload: GenerateCodesIn,
    admin: SessionUser = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    codes = invitation_service.generate_codes(db, payload.count, created_by=admin.sub)
    logger.info(f"Admin generated {len(codes)} invitation codes", user_id=admin.sub)
    return {"success": True, "count": len(codes), "codes": [c.code for c in codes]}


@router.get("/sellers")
def list_sellers(admin: SessionUser = Depends(get_current_admin), db: Session = Depends(get_db)):
    return admin_service.list_sellers(db)


@router.post("/sales-data", status_code=201)
def record_sales_data(
    payload: SalesDataIn,
    admin: SessionUser = Depends(get_current_admin),
    db: Session = Depends(get_db),
):
    common = dict(
        value=payload.value,
        date=payload.date,
        cert_number=payload.certNumber,
        is_auction=payload.isAuction,
        image_url=payload.imageUrl,
        title=payload.title,
        source=payload.source,
        source_id=payload.sourceId,
    )
    if payload.gradingCompany.upper() == "PSA":
        if not payload.psaApiResponse:
            raise ValidationError("psaApiResponse is required for PSA sales")
        result = sales_data_service.process_psa_sales_data(
            db, psa_api_response=payload.psaApiResponse, **common
        )
    else:
        result = sales_data_service.process_sales_data(
            db,
            grading_company=payload.gradingCompany.upper(),
            api_response=payload.apiResponse,
            card_name=payload.cardName,
            set_name=payload.setName,
            card_number=payload.cardNumber,
            variety=payload.variety,
            spec_id=payload.specId,
            **common,
        )

    if result["salesDataId"] is None:
        raise ValidationError("Could not extract card data from PSA response")
    return result


@router.post("/test-email")
def send_test_email(payload: TestEmailIn, admin: SessionUser = Depends(get_current_admin)):
    result = email_service.send_test_email(payload.to)
    return {"success": result.success, "id": result.id, "error": result.error}
