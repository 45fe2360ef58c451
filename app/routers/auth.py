"""
Auth Router - Auth0 login, callback and logout.
Endpoints: /api/auth/*
"""
import secrets
from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import RedirectResponse
from jose import JWTError

from app.core.config import SESSION_COOKIE_NAME, get_base_url
from app.core.exceptions import AuthenticationError
from app.core.logging import get_logger
from app.core.security import verify_session_token
from app.services import auth0_service

logger = get_logger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

COOKIE_MAX_AGE = 60 * 60 * 24 * 7  # 7 days
STATE_COOKIE = "auth_state"
RETURN_TO_COOKIE = "auth_return_to"


def _safe_return_to(value: Optional[str]) -> str:
    # Only same-site relative paths
    if not value or not value.startswith("/") or value.startswith("//"):
        return "/"
    return value


def _callback_url(request: Request) -> str:
    return f"{get_base_url(request.headers.get('host'))}/api/auth/callback"


@router.get("/login")
def login(request: Request, returnTo: Optional[str] = None):
    state = secrets.token_urlsafe(16)
    response = RedirectResponse(auth0_service.build_authorize_url(_callback_url(request), state))
    secure = request.url.scheme == "https"
    response.set_cookie(STATE_COOKIE, state, max_age=600, httponly=True, secure=secure, samesite="lax")
    response.set_cookie(
        RETURN_TO_COOKIE, _safe_return_to(returnTo), max_age=600, httponly=True, secure=secure, samesite="lax"
    )
    return response


@router.get("/callback")
def callback(request: Request, code: Optional[str] = None, state: Optional[str] = None):
    expected_state = request.cookies.get(STATE_COOKIE)
    if not code or not state or not expected_state or not secrets.compare_digest(state, expected_state):
        raise AuthenticationError("Invalid login state")

    tokens = auth0_service.exchange_code(code, _callback_url(request))
    id_token = tokens.get("id_token")
    try:
        claims = verify_session_token(id_token or "")
    except JWTError as e:
        logger.warning(f"Auth0 returned an invalid ID token: {e}")
        raise AuthenticationError("Invalid login response")

    logger.info("User logged in", user_id=claims["sub"])
    response = RedirectResponse(_safe_return_to(request.cookies.get(RETURN_TO_COOKIE)))
    response.set_cookie(
        key=SESSION_COOKIE_NAME,
        value=id_token,
        httponly=True,
        secure=request.url.scheme == "https",
        samesite="lax",
        max_age=COOKIE_MAX_AGE,
    )
    response.delete_cookie(STATE_COOKIE)
    response.delete_cookie(RETURN_TO_COOKIE)
    return response


@router.get("/logout")
def logout(request: Request):
    base_url = get_base_url(request.headers.get("host"))
    response = RedirectResponse(auth0_service.build_logout_url(base_url))
    response.delete_cookie(SESSION_COOKIE_NAME)
    return response
