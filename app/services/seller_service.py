"""
Seller Service - Stripe Connect onboarding and seller capability.
"""
from typing import Any, Dict

from loguru import logger
from sqlalchemy.orm import Session

from app.core.exceptions import ValidationError
from app.core.security import SessionUser
from app.services import stripe_service, user_service


def start_onboarding(db: Session, session_user: SessionUser, base_url: str) -> Dict[str, Any]:
    if not session_user.email:
        raise ValidationError("An email address is required to become a seller")

    user, _ = user_service.get_or_create_user(db, session_user.sub)
    if not user.stripe_account_id:
        account = stripe_service.create_connect_account(session_user.email, user.id)
        user.stripe_account_id = account.id
        db.commit()
        logger.info(f"[Seller] created Connect account {account.id} for {user.id}")

    link = stripe_service.create_account_link(user.stripe_account_id, base_url)
    return {"accountId": user.stripe_account_id, "onboardingUrl": link.url}


def get_status(db: Session, user_id: str) -> Dict[str, Any]:
    user = user_service.get_user(db, user_id)
    if user is None or not user.stripe_account_id:
        return {"hasAccount": False, "isVerified": False, "status": "none"}

    account = stripe_service.retrieve_account(user.stripe_account_id)
    return {
        "hasAccount": True,
        "isVerified": stripe_service.is_account_verified(account),
        "status": stripe_service.account_status(account),
    }


def can_sell(db: Session, user_id: str) -> bool:
    return get_status(db, user_id)["isVerified"]


def create_dashboard_link(db: Session, user_id: str) -> Dict[str, Any]:
    user = user_service.get_user(db, user_id)
    if user is None or not user.stripe_account_id:
        raise ValidationError("No Stripe account found. Please complete seller onboarding first.")
    link = stripe_service.create_login_link(user.stripe_account_id)
    return {"dashboardUrl": link.url}
