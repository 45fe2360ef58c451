"""
User Router - Profile, handles and email.
Endpoints: /api/user/*
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Request
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.core.exceptions import UpstreamError
from app.core.logging import get_logger
from app.core.security import SessionUser, get_session_user, require_user
from app.db.deps import get_db
from app.services import auth0_service, user_service

logger = get_logger(__name__)

router = APIRouter(prefix="/api/user", tags=["user"])


class UpdateEmailIn(BaseModel):
    email: Optional[str] = None


@router.get("/me")
def me(user: SessionUser = Depends(require_user)):
    try:
        profile = auth0_service.get_user(user.sub)
    except UpstreamError as e:
        logger.error(f"Failed to fetch user profile: {e.message}", user_id=user.sub)
        raise UpstreamError("Failed to fetch user profile", service="auth0")

    return {
        "user": {
            "sub": profile.get("user_id"),
            "email": profile.get("email"),
            "name": profile.get("name"),
            "nickname": profile.get("nickname"),
            "picture": profile.get("picture"),
            "user_metadata": profile.get("user_metadata") or {},
            "app_metadata": profile.get("app_metadata") or {},
        }
    }


@router.get("/check-slug")
def check_slug(request: Request, slug: Optional[str] = None, db: Session = Depends(get_db)):
    slug = user_service.validate_slug(slug)
    session_user = get_session_user(request)
    available = user_service.is_slug_available(
        db, slug, exclude_user_id=session_user.sub if session_user else None
    )
    return {"available": available, "slug": slug}


@router.get("/check-username")
def check_username(username: Optional[str] = None, user: SessionUser = Depends(require_user)):
    username = user_service.validate_username(username)
    try:
        available = user_service.is_username_available(username, exclude_user_id=user.sub)
    except UpstreamError as e:
        logger.warning(f"Username check unavailable: {e.message}", user_id=user.sub)
        return {
            "available": True,
            "username": username,
            "warning": "Could not verify username availability",
        }
    return {"available": available, "username": username}


@router.post("/update-profile")
def update_profile(
    payload: Dict[str, Any] = Body(...),
    user: SessionUser = Depends(require_user),
    db: Session = Depends(get_db),
):
    return user_service.update_profile(db, user.sub, payload)


@router.post("/update-email")
def update_email(payload: UpdateEmailIn, user: SessionUser = Depends(require_user), db: Session = Depends(get_db)):
    return user_service.update_email(db, user.sub, payload.email)
