from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy import String, DateTime, Index, func
from datetime import datetime
from typing import Optional
import uuid


class Base(DeclarativeBase):
    pass


def generate_id() -> str:
    return uuid.uuid4().hex


class User(Base):
    """Marketplace user. The primary key is the Auth0 subject."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    display_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    avatar_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)  # preferred contact email
    slug: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    stripe_customer_id: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)
    stripe_account_id: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    def to_api_dict(self) -> dict:
        return {
            "id": self.id,
            "displayName": self.display_name,
            "avatarUrl": self.avatar_url,
            "slug": self.slug,
            "hasStripeAccount": bool(self.stripe_account_id),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


# Slugs are unique regardless of case
Index("uq_users_slug_lower", func.lower(User.slug), unique=True)
