"""
Application configuration.

Static settings are module constants read once from the environment.
Credentials that differ between production and staging are resolved per call
through pick_env(), which reads BASE_PROD / BASE_STAGING for the detected
runtime and falls back to plain BASE.
"""
import os
from dataclasses import dataclass
from typing import Optional

from app.core.exceptions import ConfigurationError

# =============================================================================
# STATIC SETTINGS
# =============================================================================

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./kado.db")
REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

APP_BASE_URL = os.getenv("APP_BASE_URL", "http://localhost:3000")

ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv(
        "ALLOWED_ORIGINS",
        "https://kado.io,https://www.kado.io,https://staging.kado.io,http://localhost:3000",
    ).split(",")
    if origin.strip()
]

# Auth0
AUTH0_DOMAIN = os.getenv("AUTH0_DOMAIN", "")
AUTH0_CLIENT_ID = os.getenv("AUTH0_CLIENT_ID", "")
AUTH0_CLIENT_SECRET = os.getenv("AUTH0_CLIENT_SECRET", "")
AUTH0_TOKEN_ALGO = os.getenv("AUTH0_TOKEN_ALGO", "RS256")
AUTH0_CLAIMS_NAMESPACE = os.getenv("AUTH0_CLAIMS_NAMESPACE", "https://kado.io")
SESSION_COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "access_token")

# Third-party endpoints
SHIPPO_API_BASE = os.getenv("SHIPPO_API_BASE", "https://api.goshippo.com")
RESEND_API_BASE = os.getenv("RESEND_API_BASE", "https://api.resend.com")
PSA_API_BASE = os.getenv("PSA_API_BASE", "https://api.psacard.com")

PROD_HOSTNAME = "kado.io"
STAGING_HOSTNAME = "staging.kado.io"


# =============================================================================
# RUNTIME ENVIRONMENT
# =============================================================================

@dataclass(frozen=True)
class RuntimeEnvironment:
    env: str  # "prod" | "staging"
    hostname: str

    @property
    def is_production(self) -> bool:
        return self.env == "prod"


def _normalize_hostname(value: str) -> str:
    host = value.strip().lower()
    if "://" in host:
        host = host.split("://", 1)[1]
    host = host.split("/", 1)[0].split(":", 1)[0]
    if host.startswith("www."):
        host = host[4:]
    return host


def detect_runtime_environment(hostname: Optional[str] = None) -> RuntimeEnvironment:
    """
    Resolve prod vs staging.

    RUNTIME_ENV wins when set. Otherwise the hostname decides: kado.io is
    prod, staging.kado.io and *.vercel.app previews are staging, and any
    unknown host falls back to staging.
    """
    host = _normalize_hostname(hostname or os.getenv("APP_HOSTNAME", ""))

    explicit = os.getenv("RUNTIME_ENV", "").strip().lower()
    if explicit in ("production", "prod"):
        return RuntimeEnvironment("prod", host or PROD_HOSTNAME)
    if explicit == "staging":
        return RuntimeEnvironment("staging", host or STAGING_HOSTNAME)

    if host == PROD_HOSTNAME:
        return RuntimeEnvironment("prod", host)
    return RuntimeEnvironment("staging", host or STAGING_HOSTNAME)


def is_production() -> bool:
    return detect_runtime_environment().is_production


def pick_env(base: str, required: bool = False, label: Optional[str] = None) -> Optional[str]:
    """Read BASE_PROD or BASE_STAGING for the current runtime, then BASE."""
    runtime = detect_runtime_environment()
    suffix = "PROD" if runtime.is_production else "STAGING"
    name = f"{base}_{suffix}"
    value = os.getenv(name) or os.getenv(base)
    if required and not value:
        raise ConfigurationError(f"Missing env var: {name} ({label or base})")
    return value or None


# =============================================================================
# CREDENTIAL GETTERS
# =============================================================================

def get_stripe_secret_key() -> str:
    return pick_env("STRIPE_SECRET_KEY", required=True, label="Stripe secret key")


def get_stripe_webhook_secret() -> Optional[str]:
    return pick_env("STRIPE_WEBHOOK_SECRET")


def get_shippo_token() -> str:
    return pick_env("SHIPPO_API_TOKEN", required=True, label="Shippo API token")


def get_shippo_webhook_secret() -> Optional[str]:
    return pick_env("SHIPPO_WEBHOOK_SECRET")


def get_resend_api_key() -> Optional[str]:
    return pick_env("RESEND_API_KEY")


def get_psa_api_key() -> str:
    return pick_env("PSA_API_KEY", required=True, label="PSA public API key")


@dataclass(frozen=True)
class CloudinaryCredentials:
    cloud_name: str
    api_key: str
    api_secret: str


def get_cloudinary_credentials() -> CloudinaryCredentials:
    return CloudinaryCredentials(
        cloud_name=pick_env("CLOUDINARY_CLOUD_NAME", required=True, label="Cloudinary cloud name"),
        api_key=pick_env("CLOUDINARY_API_KEY", required=True, label="Cloudinary API key"),
        api_secret=pick_env("CLOUDINARY_API_SECRET", required=True, label="Cloudinary API secret"),
    )


@dataclass(frozen=True)
class Auth0ManagementCredentials:
    domain: str
    client_id: str
    client_secret: str


def get_auth0_management_credentials() -> Auth0ManagementCredentials:
    domain = os.getenv("AUTH0_MGMT_DOMAIN") or AUTH0_DOMAIN
    client_id = os.getenv("AUTH0_MGMT_CLIENT_ID") or AUTH0_CLIENT_ID
    client_secret = os.getenv("AUTH0_MGMT_CLIENT_SECRET") or AUTH0_CLIENT_SECRET
    if not (domain and client_id and client_secret):
        raise ConfigurationError("Missing Auth0 Management API configuration")
    return Auth0ManagementCredentials(domain, client_id, client_secret)


def get_base_url(host: Optional[str] = None) -> str:
    """Public base URL used to build redirect targets."""
    if not host:
        return APP_BASE_URL.rstrip("/")
    protocol = "http" if host.startswith("localhost") or host.startswith("127.0.0.1") else "https"
    return f"{protocol}://{host}"
