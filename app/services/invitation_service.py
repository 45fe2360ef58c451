"""
Invitation Service - single-use signup codes.

A code can be used by one user and a user can hold one code. Both rules are
backed by unique constraints (code, used_by); the claim itself is a
conditional UPDATE ... WHERE used_by IS NULL, so two concurrent
redemptions cannot both win.
"""
import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from loguru import logger
from sqlalchemy import desc
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.exceptions import ValidationError
from app.models.invitation_code import InvitationCode

POKEMON_NAMES = [
    "PIKACHU", "CHARIZARD", "BULBASAUR", "SQUIRTLE", "JIGGLYPUFF", "MEOWTH",
    "PSYDUCK", "SNORLAX", "EEVEE", "MEWTWO", "MEW", "GENGAR", "GYARADOS",
    "LAPRAS", "DRAGONITE", "ONIX", "MACHAMP", "ALAKAZAM", "ARCANINE", "VAPOREON",
    "JOLTEON", "FLAREON", "DITTO", "TOGEPI", "MARILL", "UMBREON", "ESPEON",
    "LUGIA", "HOOH", "CELEBI", "TYRANITAR", "SCIZOR", "BLAZIKEN", "GARDEVOIR",
    "RAYQUAZA", "LUCARIO", "GARCHOMP", "DARKRAI", "ZOROARK", "GRENINJA",
]

INVALID_CODE = "Invalid invitation code"
CODE_ALREADY_USED = "This invitation code has already been used"


def normalize_code(code: Optional[str], **extra: Any) -> str:
    code = (code or "").strip().upper()
    if not code:
        raise ValidationError("Invitation code is required", **extra)
    return code


def get_code(db: Session, code: str) -> Optional[InvitationCode]:
    return db.query(InvitationCode).filter(InvitationCode.code == code).first()


def get_code_for_user(db: Session, user_id: str) -> Optional[InvitationCode]:
    return db.query(InvitationCode).filter(InvitationCode.used_by == user_id).first()


def validate_code(db: Session, raw_code: Optional[str]) -> Dict[str, Any]:
    code = normalize_code(raw_code, valid=False)
    invitation = get_code(db, code)
    if invitation is None:
        raise ValidationError(INVALID_CODE, valid=False)
    if invitation.is_used:
        raise ValidationError(CODE_ALREADY_USED, valid=False)
    return {"valid": True, "code": invitation.code}


@dataclass
class RedeemResult:
    code: str
    already_redeemed: bool

    def to_api_dict(self) -> Dict[str, Any]:
        message = (
            "Invitation code already redeemed"
            if self.already_redeemed
            else "Invitation code redeemed successfully"
        )
        return {"success": True, "message": message, "code": self.code}


def redeem_code(db: Session, raw_code: Optional[str], user_id: str) -> RedeemResult:
    code = normalize_code(raw_code, success=False)

    prior = get_code_for_user(db, user_id)
    if prior is not None:
        return RedeemResult(code=prior.code, already_redeemed=True)

    invitation = get_code(db, code)
    if invitation is None:
        raise ValidationError(INVALID_CODE, success=False)
    if invitation.is_used:
        raise ValidationError(CODE_ALREADY_USED, success=False)

    try:
        claimed = (
            db.query(InvitationCode)
            .filter(InvitationCode.id == invitation.id, InvitationCode.used_by.is_(None))
            .update(
                {InvitationCode.used_by: user_id, InvitationCode.used_at: datetime.utcnow()},
                synchronize_session=False,
            )
        )
        db.commit()
    except IntegrityError:
        # Another request from this user claimed a different code first
        db.rollback()
        claimed = 0

    if claimed == 0:
        db.expire_all()
        prior = get_code_for_user(db, user_id)
        if prior is not None:
            return RedeemResult(code=prior.code, already_redeemed=True)
        raise ValidationError(CODE_ALREADY_USED, success=False)

    logger.info(f"[Invitations] {code} redeemed by {user_id}")
    return RedeemResult(code=code, already_redeemed=False)


def check_status(db: Session, user_id: str) -> Dict[str, Any]:
    invitation = get_code_for_user(db, user_id)
    return {
        "hasRedeemed": invitation is not None,
        "code": invitation.code if invitation else None,
        "redeemedAt": invitation.used_at.isoformat() if invitation and invitation.used_at else None,
    }


# =============================================================================
# ADMIN
# =============================================================================

def list_codes(db: Session) -> Dict[str, Any]:
    codes = (
        db.query(InvitationCode)
        .order_by(
            InvitationCode.used_at.is_(None),
            desc(InvitationCode.used_at),
            desc(InvitationCode.created_at),
        )
        .all()
    )
    used = sum(1 for c in codes if c.is_used)
    return {
        "codes": [c.to_api_dict() for c in codes],
        "summary": {"total": len(codes), "used": used, "unused": len(codes) - used},
    }


def generate_code() -> str:
    return f"{secrets.choice(POKEMON_NAMES)}-{secrets.token_hex(2).upper()}"


def generate_codes(db: Session, count: int, created_by: Optional[str] = None) -> List[InvitationCode]:
    if count < 1 or count > 500:
        raise ValidationError("Count must be between 1 and 500")

    existing = {row.code for row in db.query(InvitationCode.code).all()}
    created = []
    while len(created) < count:
        code = generate_code()
        if code in existing:
            continue
        existing.add(code)
        invitation = InvitationCode(code=code, created_by=created_by)
        db.add(invitation)
        created.append(invitation)

    db.commit()
    logger.info(f"[Invitations] generated {count} codes")
    return created
