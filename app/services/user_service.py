"""
User Service - local user rows mirrored from Auth0.

User rows are created lazily the first time an authenticated action needs
one, and refreshed from the Auth0 profile (display name, avatar).
"""
import re
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from loguru import logger
from sqlalchemy import func
from sqlalchemy.orm import Session

from app.core.exceptions import ConflictError, KadoError, UpstreamError, ValidationError
from app.models.user import User
from app.services import auth0_service

SLUG_PATTERN = re.compile(r"^[a-zA-Z0-9][a-zA-Z0-9_-]*$")
USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_]+$")
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

MIN_HANDLE_LENGTH = 3
MAX_HANDLE_LENGTH = 20


def get_user(db: Session, user_id: str) -> Optional[User]:
    return db.query(User).filter(User.id == user_id).first()


def get_or_create_user(db: Session, user_id: str) -> Tuple[User, Optional[Dict[str, Any]]]:
    """
    Return the local user, creating or refreshing it from Auth0.

    Returns (user, auth0_profile). The profile is None when the Management
    API is unreachable; the local row is still usable.
    """
    auth0_user = None
    try:
        auth0_user = auth0_service.get_user(user_id)
    except KadoError as e:
        logger.warning(f"[User] Auth0 profile unavailable for {user_id}: {e.message}")

    user = get_user(db, user_id)
    if user is None:
        user = User(id=user_id)
        db.add(user)

    if auth0_user:
        user.display_name = auth0_service.get_display_name(auth0_user) or user.display_name
        user.avatar_url = auth0_service.get_picture(auth0_user) or user.avatar_url

    db.flush()
    return user, auth0_user


def get_preferred_email(
    user: Optional[User],
    auth0_user: Optional[Dict[str, Any]] = None,
    fallback: Optional[str] = None,
) -> Optional[str]:
    """Stored preferred email, then the Auth0 profile email, then the fallback."""
    if user is not None and user.email:
        return user.email
    if auth0_user:
        metadata = auth0_user.get("user_metadata") or {}
        if metadata.get("preferredEmail"):
            return metadata["preferredEmail"]
        if auth0_user.get("email"):
            return auth0_user["email"]
    return fallback or None


# =============================================================================
# HANDLES (slug / username)
# =============================================================================

def validate_slug(slug: Optional[str]) -> str:
    slug = (slug or "").strip()
    if not slug:
        raise ValidationError("Slug is required")
    if len(slug) < MIN_HANDLE_LENGTH or len(slug) > MAX_HANDLE_LENGTH:
        raise ValidationError(
            f"Slug must be between {MIN_HANDLE_LENGTH} and {MAX_HANDLE_LENGTH} characters"
        )
    if not SLUG_PATTERN.match(slug):
        raise ValidationError(
            "Slug must start with a letter or number and contain only letters, numbers, hyphens and underscores"
        )
    return slug


def validate_username(username: Optional[str]) -> str:
    username = (username or "").strip()
    if not username:
        raise ValidationError("Username is required")
    if not USERNAME_PATTERN.match(username):
        raise ValidationError("Username can only contain letters, numbers, and underscores")
    if len(username) < MIN_HANDLE_LENGTH or len(username) > MAX_HANDLE_LENGTH:
        raise ValidationError(
            f"Username must be between {MIN_HANDLE_LENGTH} and {MAX_HANDLE_LENGTH} characters"
        )
    return username


def is_slug_available(db: Session, slug: str, exclude_user_id: Optional[str] = None) -> bool:
    query = db.query(User.id).filter(func.lower(User.slug) == slug.lower())
    if exclude_user_id:
        query = query.filter(User.id != exclude_user_id)
    return query.first() is None


def is_username_available(username: str, exclude_user_id: Optional[str] = None) -> bool:
    matches = auth0_service.search_users(f'user_metadata.displayName:"{username}"', per_page=5)
    for match in matches:
        display_name = (match.get("user_metadata") or {}).get("displayName")
        if display_name == username and match.get("user_id") != exclude_user_id:
            return False
    return True


def set_slug(db: Session, user: User, slug: str) -> None:
    slug = validate_slug(slug)
    if not is_slug_available(db, slug, exclude_user_id=user.id):
        raise ConflictError("This URL is already taken")
    user.slug = slug


def validate_email(email: Optional[str]) -> str:
    email = (email or "").strip()
    if not email or not EMAIL_PATTERN.match(email):
        raise ValidationError("Valid email is required")
    return email.lower()


# =============================================================================
# PROFILE
# =============================================================================

def update_profile(db: Session, user_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Merge onboarding/profile fields into Auth0 user_metadata.

    The slug is checked before Auth0 is touched so a taken slug changes
    nothing.
    """
    first_name = (data.get("firstName") or "").strip()
    last_name = (data.get("lastName") or "").strip()
    display_name = (data.get("displayName") or "").strip()
    if not first_name or not last_name or not display_name:
        raise ValidationError("Missing required fields: firstName, lastName, displayName")

    user, _ = get_or_create_user(db, user_id)
    if data.get("slug"):
        set_slug(db, user, data["slug"])

    updates: Dict[str, Any] = {
        "firstName": first_name,
        "lastName": last_name,
        "displayName": display_name,
        "profileComplete": data["profileComplete"] if data.get("profileComplete") is not None else True,
    }
    if data.get("phone"):
        updates["phone"] = str(data["phone"]).strip()
    if data.get("preferences"):
        updates["preferences"] = data["preferences"]

    try:
        auth0_service.update_user_metadata(user_id, updates)
    except UpstreamError as e:
        db.rollback()
        raise UpstreamError.from_auth0(e)

    user.display_name = display_name
    db.commit()
    logger.info(f"[User] profile updated for {user_id}")
    return {"success": True, "message": "Profile updated successfully"}


def update_email(db: Session, user_id: str, raw_email: Optional[str]) -> Dict[str, Any]:
    """Store the preferred email; the Auth0 primary email is updated when the connection allows it."""
    email = validate_email(raw_email)

    updated_primary = False
    try:
        auth0_service.update_user(user_id, {"email": email})
        updated_primary = True
    except UpstreamError as e:
        # Social connections do not allow changing the primary email
        logger.info(f"[User] primary email not updated for {user_id}: {e.message}")

    user, auth0_user = get_or_create_user(db, user_id)
    user.email = email
    db.commit()
    return {
        "success": True,
        "email": get_preferred_email(user, auth0_user, email),
        "updatedPrimary": updated_primary,
    }


def update_avatar(db: Session, user_id: str, public_id: str, secure_url: str) -> Dict[str, Any]:
    try:
        auth0_service.update_user_metadata(user_id, {
            "avatar": {
                "public_id": public_id,
                "secure_url": secure_url,
                "updated_at": datetime.utcnow().isoformat(),
            },
        })
    except UpstreamError as e:
        raise UpstreamError.from_auth0(e)

    user = get_user(db, user_id) or User(id=user_id)
    user.avatar_url = secure_url
    db.add(user)
    db.commit()
    return {
        "success": True,
        "message": "Avatar updated successfully",
        "avatar": {"public_id": public_id, "secure_url": secure_url},
    }
