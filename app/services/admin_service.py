"""
Admin Service - role checks and seller overview.
"""
from typing import Any, Dict, List

import stripe
from loguru import logger
from sqlalchemy.orm import Session

from app.core.exceptions import KadoError
from app.models.user import User
from app.services import auth0_service, stripe_service

ADMIN_ROLE = "admin"


def _has_admin_role(roles: Any) -> bool:
    if not isinstance(roles, list):
        return False
    for role in roles:
        name = role.get("name") if isinstance(role, dict) else role
        if isinstance(name, str) and name.lower() == ADMIN_ROLE:
            return True
    return False


def is_admin(user_id: str) -> bool:
    """
    Admin if the Auth0 roles API lists "admin", else app_metadata.roles,
    else user_metadata.roles. Any failure means not admin.
    """
    try:
        try:
            if _has_admin_role(auth0_service.get_user_roles(user_id)):
                return True
        except KadoError as e:
            logger.warning(f"[Admin] roles API unavailable for {user_id}: {e.message}")

        profile = auth0_service.get_user(user_id)
        if _has_admin_role((profile.get("app_metadata") or {}).get("roles")):
            return True
        return _has_admin_role((profile.get("user_metadata") or {}).get("roles"))
    except KadoError as e:
        logger.warning(f"[Admin] admin check failed for {user_id}: {e.message}")
        return False


def list_sellers(db: Session) -> Dict[str, Any]:
    users = (
        db.query(User)
        .filter(User.stripe_account_id.isnot(None))
        .order_by(User.created_at.desc())
        .all()
    )
    sellers: List[Dict[str, Any]] = []
    for user in users:
        try:
            account = stripe_service.retrieve_account(user.stripe_account_id)
            verification_status = stripe_service.account_status(account)
        except (stripe.StripeError, KadoError) as e:
            logger.warning(f"[Admin] could not load Stripe account {user.stripe_account_id}: {e}")
            verification_status = "unknown"
        sellers.append({
            **user.to_api_dict(),
            "stripeAccountId": user.stripe_account_id,
            "verificationStatus": verification_status,
        })
    return {"sellers": sellers, "count": len(sellers)}
