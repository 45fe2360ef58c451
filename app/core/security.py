"""
Session handling on top of Auth0 ID tokens.

The session cookie (or a Bearer header) carries the Auth0 ID token. It is
verified with python-jose: RS256 against the tenant JWKS by default, or
HS256 with the client secret when AUTH0_TOKEN_ALGO=HS256.
"""
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Dict, Optional
from urllib.parse import quote

import httpx
from fastapi import Request
from jose import jwt, JWTError

from app.core.config import (
    AUTH0_DOMAIN,
    AUTH0_CLIENT_ID,
    AUTH0_CLIENT_SECRET,
    AUTH0_TOKEN_ALGO,
    AUTH0_CLAIMS_NAMESPACE,
    SESSION_COOKIE_NAME,
)
from app.core.exceptions import AuthenticationError
from app.core.logging import get_logger

logger = get_logger(__name__)


@dataclass
class SessionUser:
    sub: str
    email: Optional[str] = None
    name: Optional[str] = None
    nickname: Optional[str] = None
    picture: Optional[str] = None
    user_metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_claims(cls, claims: Dict[str, Any]) -> "SessionUser":
        return cls(
            sub=claims["sub"],
            email=claims.get("email"),
            name=claims.get("name"),
            nickname=claims.get("nickname"),
            picture=claims.get("picture"),
            user_metadata=claims.get(f"{AUTH0_CLAIMS_NAMESPACE}/user_metadata") or {},
        )


@lru_cache(maxsize=1)
def _get_jwks() -> Dict[str, Any]:
    response = httpx.get(f"https://{AUTH0_DOMAIN}/.well-known/jwks.json", timeout=10.0)
    response.raise_for_status()
    return response.json()


def _signing_key(token: str) -> Dict[str, Any]:
    kid = jwt.get_unverified_header(token).get("kid")
    for key in _get_jwks().get("keys", []):
        if key.get("kid") == kid:
            return key
    raise JWTError("Signing key not found")


def verify_session_token(token: str) -> Dict[str, Any]:
    """Decode and verify an Auth0 ID token. Raises JWTError on any failure."""
    if AUTH0_TOKEN_ALGO == "HS256":
        key: Any = AUTH0_CLIENT_SECRET
    else:
        try:
            key = _signing_key(token)
        except httpx.HTTPError as e:
            raise JWTError(f"JWKS unavailable: {e}")

    claims = jwt.decode(
        token,
        key,
        algorithms=[AUTH0_TOKEN_ALGO],
        audience=AUTH0_CLIENT_ID,
        issuer=f"https://{AUTH0_DOMAIN}/",
    )
    if not claims.get("sub"):
        raise JWTError("Token has no subject")
    return claims


def get_token_from_request(request: Request) -> Optional[str]:
    token = request.cookies.get(SESSION_COOKIE_NAME)
    if not token:
        auth_header = request.headers.get("Authorization", "")
        if auth_header.startswith("Bearer "):
            token = auth_header[7:]
    return token or None


def get_session_user(request: Request) -> Optional[SessionUser]:
    """Session user for the request, or None. Cached on request.state."""
    if hasattr(request.state, "session_user"):
        return request.state.session_user

    session_user = None
    token = get_token_from_request(request)
    if token:
        try:
            session_user = SessionUser.from_claims(verify_session_token(token))
        except JWTError as e:
            logger.info(f"Rejected session token: {e}")

    request.state.session_user = session_user
    return session_user


def require_user(request: Request) -> SessionUser:
    session_user = get_session_user(request)
    if session_user is None:
        raise AuthenticationError()
    return session_user


def is_profile_complete(session_user: SessionUser) -> bool:
    return session_user.user_metadata.get("profileComplete") is True


# =============================================================================
# ROUTE GATE
# =============================================================================

PUBLIC_PREFIXES = (
    "/api/auth",
    "/api/webhooks",
    "/api/invitation-codes/validate",
    "/api/user/check-slug",
    "/api/admin/check",
    "/api/certificates",
    "/onboarding",
    "/health",
    "/docs",
    "/redoc",
    "/openapi.json",
    "/static",
    "/favicon.ico",
    "/robots.txt",
    "/sitemap.xml",
)

# Browsing the public catalog does not need a session
PUBLIC_EXACT = {"/api/listings"}

PROFILE_CHECK_BYPASS = ("/api", "/onboarding", "/profile")


def _matches(path: str, prefixes) -> bool:
    return any(path == p or path.startswith(p.rstrip("/") + "/") for p in prefixes)


def is_public_path(path: str) -> bool:
    return path in PUBLIC_EXACT or _matches(path, PUBLIC_PREFIXES)


def return_to(request: Request) -> str:
    path = request.url.path
    if request.url.query:
        path = f"{path}?{request.url.query}"
    return quote(path, safe="")


def gate_decision(request: Request) -> Optional[str]:
    """
    Decide what the gate does with a request.

    Returns None to let it through, "unauthorized" for API calls without a
    session, or a redirect location for page requests.
    """
    path = request.url.path
    if request.method == "OPTIONS" or is_public_path(path):
        return None

    session_user = get_session_user(request)
    if session_user is None:
        if path.startswith("/api/"):
            return "unauthorized"
        return f"/api/auth/login?returnTo={return_to(request)}"

    if not _matches(path, PROFILE_CHECK_BYPASS) and not is_profile_complete(session_user):
        return f"/onboarding?returnTo={return_to(request)}"
    return None
