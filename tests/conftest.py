import os

# Settings are read at import time, so they must be in place before app imports.
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["RUNTIME_ENV"] = "staging"
os.environ["AUTH0_DOMAIN"] = "kado-test.us.auth0.com"
os.environ["AUTH0_CLIENT_ID"] = "test-client-id"
os.environ["AUTH0_CLIENT_SECRET"] = "test-client-secret"
os.environ["AUTH0_TOKEN_ALGO"] = "HS256"
os.environ["CLOUDINARY_CLOUD_NAME"] = "kado-test"
os.environ["CLOUDINARY_API_KEY"] = "test-api-key"
os.environ["CLOUDINARY_API_SECRET"] = "test-api-secret"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_kado"
os.environ["SHIPPO_API_TOKEN"] = "shippo_test_kado"
os.environ["RESEND_API_KEY"] = "re_test_kado"

import time
from datetime import datetime, timedelta
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import fakeredis
import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core import rate_limiter
from app.core.config import AUTH0_CLAIMS_NAMESPACE
from app.db.deps import get_db
from app.models import Base, Listing, ListingStatus, Order, OrderStatus, User
from app.services import auth0_service, email_service, stripe_service
from main import app

BUYER_ID = "auth0|buyer"
SELLER_ID = "auth0|seller"
OTHER_ID = "auth0|other"


def make_token(
    sub: str = BUYER_ID,
    email: Optional[str] = "buyer@example.com",
    profile_complete: bool = True,
    **claims: Any,
) -> str:
    now = int(time.time())
    payload = {
        "sub": sub,
        "aud": os.environ["AUTH0_CLIENT_ID"],
        "iss": f"https://{os.environ['AUTH0_DOMAIN']}/",
        "iat": now,
        "exp": now + 3600,
        f"{AUTH0_CLAIMS_NAMESPACE}/user_metadata": {"profileComplete": profile_complete},
        **claims,
    }
    if email:
        payload["email"] = email
    return jwt.encode(payload, os.environ["AUTH0_CLIENT_SECRET"], algorithm="HS256")


def auth_headers(sub: str = BUYER_ID, **kwargs: Any) -> Dict[str, str]:
    return {"Authorization": f"Bearer {make_token(sub, **kwargs)}"}


# =============================================================================
# DATABASE
# =============================================================================

@pytest.fixture()
def db():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    session = sessionmaker(bind=engine, autoflush=False, autocommit=False)()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture()
def client(db):
    def _get_db():
        yield db

    app.dependency_overrides[get_db] = _get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_db, None)


@pytest.fixture(autouse=True)
def fake_redis():
    client = fakeredis.FakeRedis()
    rate_limiter.set_redis(client)
    yield client
    rate_limiter.set_redis(None)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in (
        "STRIPE_WEBHOOK_SECRET",
        "STRIPE_WEBHOOK_SECRET_STAGING",
        "STRIPE_WEBHOOK_SECRET_PROD",
        "SHIPPO_WEBHOOK_SECRET",
        "SHIPPO_WEBHOOK_SECRET_STAGING",
        "SHIPPO_WEBHOOK_SECRET_PROD",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("RUNTIME_ENV", "staging")


# =============================================================================
# THIRD-PARTY FAKES
# =============================================================================

class FakeAuth0:
    """In-memory stand-in for the Auth0 Management API."""

    def __init__(self):
        self.users: Dict[str, Dict[str, Any]] = {}
        self.roles: Dict[str, List[Dict[str, Any]]] = {}
        self.updates: List[Dict[str, Any]] = []

    def add_user(self, user_id: str, email: Optional[str] = None, **fields: Any) -> Dict[str, Any]:
        profile = {"user_id": user_id, "email": email, "user_metadata": {}, "app_metadata": {}, **fields}
        self.users[user_id] = profile
        return profile

    def get_user(self, user_id: str) -> Dict[str, Any]:
        return self.users.get(user_id) or {"user_id": user_id, "user_metadata": {}, "app_metadata": {}}

    def update_user(self, user_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        self.updates.append({"user_id": user_id, **payload})
        profile = self.get_user(user_id)
        profile.update(payload)
        self.users[user_id] = profile
        return profile

    def update_user_metadata(self, user_id: str, updates: Dict[str, Any]) -> Dict[str, Any]:
        current = self.get_user(user_id).get("user_metadata") or {}
        return self.update_user(user_id, {"user_metadata": {**current, **updates}})

    def get_user_roles(self, user_id: str) -> List[Dict[str, Any]]:
        return self.roles.get(user_id, [])

    def search_users(self, query: str, per_page: int = 1) -> List[Dict[str, Any]]:
        wanted = query.split(":", 1)[1].strip('"')
        return [
            u for u in self.users.values()
            if (u.get("user_metadata") or {}).get("displayName") == wanted
        ]


@pytest.fixture(autouse=True)
def fake_auth0(monkeypatch):
    fake = FakeAuth0()
    fake.add_user(BUYER_ID, email="buyer@example.com", name="Ash Buyer")
    fake.add_user(SELLER_ID, email="seller@example.com", name="Misty Seller")
    for name in ("get_user", "update_user", "update_user_metadata", "get_user_roles", "search_users"):
        monkeypatch.setattr(auth0_service, name, getattr(fake, name))
    return fake


@pytest.fixture(autouse=True)
def sent_emails(monkeypatch):
    """Captures outgoing email instead of calling Resend."""
    outbox: List[Dict[str, str]] = []

    def fake_send_email(to, subject, html, sender="orders"):
        outbox.append({"to": to, "subject": subject, "html": html, "sender": sender})
        return f"email_{len(outbox)}"

    monkeypatch.setattr(email_service, "send_email", fake_send_email)
    monkeypatch.setattr(stripe_service, "get_order_addresses", lambda session_id: None)
    return outbox


@pytest.fixture()
def fake_checkout(monkeypatch):
    """Stripe customer + Checkout Session stubs; records the session kwargs."""
    calls: Dict[str, Any] = {}

    def create_checkout_session(**kwargs):
        calls["session"] = kwargs
        return SimpleNamespace(id="cs_test_123", url="https://checkout.stripe.com/c/pay/cs_test_123")

    monkeypatch.setattr(stripe_service, "get_or_create_customer", lambda db, user, email: "cus_test_123")
    monkeypatch.setattr(stripe_service, "create_checkout_session", create_checkout_session)
    return calls


# =============================================================================
# FACTORIES
# =============================================================================

def make_user(db, user_id: str, email: Optional[str] = None, **fields: Any) -> User:
    user = User(id=user_id, email=email, **fields)
    db.add(user)
    db.commit()
    return user


def make_listing(db, seller_id: str = SELLER_ID, status: str = ListingStatus.PUBLISHED.value, **fields: Any) -> Listing:
    listing = Listing(
        seller_id=seller_id,
        display_title=fields.pop("display_title", "Charizard - Base Set PSA 9"),
        asking_price_cents=fields.pop("asking_price_cents", 19999),
        currency=fields.pop("currency", "USD"),
        status=status,
        image_url=fields.pop("image_url", "https://res.cloudinary.com/kado-test/charizard.jpg"),
        **fields,
    )
    db.add(listing)
    db.commit()
    return listing


def make_order(
    db,
    listing: Optional[Listing] = None,
    buyer_id: str = BUYER_ID,
    seller_id: str = SELLER_ID,
    status: str = OrderStatus.PENDING.value,
    **fields: Any,
) -> Order:
    price = listing.asking_price_cents if listing else 19999
    order = Order(
        buyer_id=buyer_id,
        seller_id=seller_id,
        listing_id=listing.id if listing else None,
        description=f"Listing purchase - {listing.display_title}" if listing else "Listing purchase",
        subtotal_cents=price,
        total_cents=price,
        currency="USD",
        status=status,
        snapshot_listing_display_title=listing.display_title if listing else "Charizard - Base Set PSA 9",
        snapshot_listing_image_url=listing.image_url if listing else None,
        snapshot_listing_price_cents=price,
        created_at=fields.pop("created_at", datetime.utcnow() - timedelta(hours=1)),
        **fields,
    )
    db.add(order)
    db.commit()
    return order
