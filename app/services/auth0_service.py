"""
Auth0 Service - OAuth login flow and Management API.

Configuration (environment variables):
- AUTH0_DOMAIN: tenant domain, e.g. kado.us.auth0.com
- AUTH0_CLIENT_ID / AUTH0_CLIENT_SECRET: regular web application
- AUTH0_MGMT_DOMAIN / AUTH0_MGMT_CLIENT_ID / AUTH0_MGMT_CLIENT_SECRET:
  machine-to-machine client for the Management API (falls back to the above)
"""
import time
from typing import Any, Dict, List, Optional
from urllib.parse import urlencode

import httpx
from loguru import logger

from app.core.config import (
    AUTH0_DOMAIN,
    AUTH0_CLIENT_ID,
    AUTH0_CLIENT_SECRET,
    get_auth0_management_credentials,
)
from app.core.exceptions import UpstreamError

HTTP_TIMEOUT = 10.0

# Management API token, refreshed shortly before expiry
_token_cache: Dict[str, Any] = {"token": None, "expires_at": 0.0}


# =============================================================================
# OAUTH LOGIN FLOW
# =============================================================================

def build_authorize_url(redirect_uri: str, state: str) -> str:
    params = {
        "response_type": "code",
        "client_id": AUTH0_CLIENT_ID,
        "redirect_uri": redirect_uri,
        "scope": "openid profile email",
        "state": state,
    }
    return f"https://{AUTH0_DOMAIN}/authorize?{urlencode(params)}"


def build_logout_url(return_to: str) -> str:
    params = {"client_id": AUTH0_CLIENT_ID, "returnTo": return_to}
    return f"https://{AUTH0_DOMAIN}/v2/logout?{urlencode(params)}"


def exchange_code(code: str, redirect_uri: str) -> Dict[str, Any]:
    """Exchange an authorization code for tokens (id_token, access_token)."""
    try:
        response = httpx.post(
            f"https://{AUTH0_DOMAIN}/oauth/token",
            json={
                "grant_type": "authorization_code",
                "client_id": AUTH0_CLIENT_ID,
                "client_secret": AUTH0_CLIENT_SECRET,
                "code": code,
                "redirect_uri": redirect_uri,
            },
            timeout=HTTP_TIMEOUT,
        )
    except httpx.HTTPError as e:
        logger.error(f"[Auth0] code exchange unreachable: {e}")
        raise UpstreamError("Authentication failed", service="auth0")
    if response.status_code != 200:
        logger.error(f"[Auth0] code exchange failed: {response.text}")
        raise UpstreamError("Authentication failed", service="auth0")
    return response.json()


# =============================================================================
# MANAGEMENT API
# =============================================================================

def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
        return body.get("message") or body.get("error_description") or response.text
    except ValueError:
        return response.text


def get_management_token() -> str:
    if _token_cache["token"] and _token_cache["expires_at"] > time.time() + 60:
        return _token_cache["token"]

    creds = get_auth0_management_credentials()
    try:
        response = httpx.post(
            f"https://{creds.domain}/oauth/token",
            json={
                "grant_type": "client_credentials",
                "client_id": creds.client_id,
                "client_secret": creds.client_secret,
                "audience": f"https://{creds.domain}/api/v2/",
            },
            timeout=HTTP_TIMEOUT,
        )
    except httpx.HTTPError as e:
        raise UpstreamError(str(e), service="auth0")
    if response.status_code != 200:
        message = _error_message(response)
        logger.error(f"[Auth0] management token request failed: {message}")
        raise UpstreamError(message, service="auth0")

    data = response.json()
    _token_cache["token"] = data["access_token"]
    _token_cache["expires_at"] = time.time() + data.get("expires_in", 3600)
    return _token_cache["token"]


def _management_request(method: str, path: str, **kwargs) -> Any:
    creds = get_auth0_management_credentials()
    try:
        response = httpx.request(
            method,
            f"https://{creds.domain}/api/v2{path}",
            headers={"Authorization": f"Bearer {get_management_token()}"},
            timeout=HTTP_TIMEOUT,
            **kwargs,
        )
    except httpx.HTTPError as e:
        logger.error(f"[Auth0] {method} {path} failed: {e}")
        raise UpstreamError(str(e), service="auth0")
    if response.status_code >= 400:
        message = _error_message(response)
        logger.error(f"[Auth0] {method} {path} failed ({response.status_code}): {message}")
        raise UpstreamError(message, service="auth0")
    return response.json() if response.content else None


def get_user(user_id: str) -> Dict[str, Any]:
    return _management_request("GET", f"/users/{user_id}")


def update_user(user_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
    return _management_request("PATCH", f"/users/{user_id}", json=payload)


def update_user_metadata(user_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
    """Merge updates into the user's existing user_metadata."""
    current = get_user(user_id).get("user_metadata") or {}
    merged = {**current, **updates}
    return update_user(user_id, {"user_metadata": merged})


def get_user_roles(user_id: str) -> List[Dict[str, Any]]:
    return _management_request("GET", f"/users/{user_id}/roles") or []


def search_users(query: str, per_page: int = 1) -> List[Dict[str, Any]]:
    return _management_request(
        "GET",
        "/users",
        params={"q": query, "search_engine": "v3", "per_page": per_page},
    ) or []


def get_display_name(auth0_user: Optional[Dict[str, Any]]) -> Optional[str]:
    if not auth0_user:
        return None
    metadata = auth0_user.get("user_metadata") or {}
    return metadata.get("displayName") or auth0_user.get("nickname") or auth0_user.get("name")


def get_picture(auth0_user: Optional[Dict[str, Any]]) -> Optional[str]:
    if not auth0_user:
        return None
    metadata = auth0_user.get("user_metadata") or {}
    avatar = metadata.get("avatar") or {}
    return avatar.get("secure_url") or metadata.get("picture") or auth0_user.get("picture")
