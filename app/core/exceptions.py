"""
Exception hierarchy for the marketplace API.

Every error carries the HTTP status it maps to. Handlers in main.py render
them as {"error": message, **extra}.
"""
from typing import Any, Dict, Optional


class KadoError(Exception):
    """Base exception for all application errors."""

    status_code: int = 500

    def __init__(self, message: str, status_code: Optional[int] = None, **extra: Any):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.extra: Dict[str, Any] = {k: v for k, v in extra.items() if v is not None}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, **self.extra}


# =============================================================================
# CLIENT ERRORS
# =============================================================================

class ValidationError(KadoError):
    """Malformed input or unmet precondition."""

    status_code = 400


class AuthenticationError(KadoError):
    """Missing or invalid session."""

    status_code = 401

    def __init__(self, message: str = "Unauthorized", **extra: Any):
        super().__init__(message, **extra)


class ForbiddenError(KadoError):
    status_code = 403


class NotFoundError(KadoError):
    status_code = 404


class ConflictError(KadoError):
    """Duplicate value for a unique field."""

    status_code = 409


class PreconditionRequiredError(KadoError):
    status_code = 428


class RateLimitError(KadoError):
    status_code = 429

    def __init__(self, message: str, retry_after: int = 60, **extra: Any):
        self.retry_after = retry_after
        super().__init__(message, **extra)


# =============================================================================
# SERVER / UPSTREAM ERRORS
# =============================================================================

class ConfigurationError(KadoError):
    """Required credentials or settings are missing."""

    status_code = 500


# Auth0 answers this when the management client lacks a grant.
AUTH0_GRANT_MARKERS = ("client-grant", "not authorized to access resource server")

AUTH0_MISCONFIGURED_MESSAGE = (
    "Unable to update your profile right now. Please contact support if this persists."
)


class UpstreamError(KadoError):
    """A third-party API call failed. The upstream message is passed through."""

    status_code = 500

    def __init__(self, message: str, service: Optional[str] = None, **extra: Any):
        self.service = service
        super().__init__(message, **extra)

    @classmethod
    def from_auth0(cls, exc: Exception) -> "UpstreamError":
        message = str(exc)
        if any(marker in message.lower() for marker in AUTH0_GRANT_MARKERS):
            return cls(AUTH0_MISCONFIGURED_MESSAGE, service="auth0")
        return cls(message, service="auth0")
