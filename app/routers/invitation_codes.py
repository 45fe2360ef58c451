"""
Invitation Codes Router - Closed-beta signup codes.
Endpoints: /api/invitation-codes/*
"""
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.core.security import SessionUser, require_user
from app.db.deps import get_db
from app.services import invitation_service

router = APIRouter(prefix="/api/invitation-codes", tags=["invitation-codes"])


class CodeIn(BaseModel):
    code: Optional[str] = None


@router.post("/validate")
def validate_code(payload: CodeIn, db: Session = Depends(get_db)):
    return invitation_service.validate_code(db, payload.code)


@router.post("/redeem")
def redeem_code(payload: CodeIn, user: SessionUser = Depends(require_user), db: Session = Depends(get_db)):
    return invitation_service.redeem_code(db, payload.code, user.sub).to_api_dict()


@router.get("/check-status")
def check_status(user: SessionUser = Depends(require_user), db: Session = Depends(get_db)):
    return invitation_service.check_status(db, user.sub)
