"""
Avatar Router - Signed Cloudinary uploads for profile pictures.
Endpoints: /api/avatar/*
"""
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.core.rate_limiter import rate_limit_avatar_upload
from app.core.security import SessionUser, require_user
from app.db.deps import get_db
from app.services import media_service, user_service

router = APIRouter(prefix="/api/avatar", tags=["avatar"])


class AvatarUpdateIn(BaseModel):
    public_id: Optional[str] = None
    secure_url: Optional[str] = None
    moderation_status: Optional[str] = None


@router.get("/upload-signature")
def upload_signature(user: SessionUser = Depends(require_user)):
    rate_limit_avatar_upload(user.sub)
    return media_service.avatar_upload_signature()


@router.post("/update")
def update_avatar(payload: AvatarUpdateIn, user: SessionUser = Depends(require_user), db: Session = Depends(get_db)):
    upload = media_service.validate_avatar_upload(
        payload.public_id, payload.secure_url, payload.moderation_status
    )
    return user_service.update_avatar(db, user.sub, upload["public_id"], upload["secure_url"])
