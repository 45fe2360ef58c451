"""
Listing model - a seller's posting of one physical graded card.
"""
import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import String, Integer, Text, DateTime, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column

from app.models.user import Base, generate_id


class ListingStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    SOLD = "SOLD"


class Listing(Base):
    __tablename__ = "listings"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=generate_id)
    seller_id: Mapped[str] = mapped_column(String(255), ForeignKey("users.id"), nullable=False)
    display_title: Mapped[str] = mapped_column(String(255), nullable=False)
    asking_price_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="USD", nullable=False)
    status: Mapped[str] = mapped_column(String(20), default=ListingStatus.DRAFT.value, nullable=False)
    seller_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    image_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)

    card_id: Mapped[Optional[str]] = mapped_column(String(32), ForeignKey("cards.id"), nullable=True)
    grading_certificate_id: Mapped[Optional[str]] = mapped_column(
        String(32), ForeignKey("grading_certificates.id"), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    __table_args__ = (
        Index("ix_listings_seller_created", "seller_id", "created_at"),
        Index("ix_listings_status", "status"),
    )

    @property
    def is_purchasable(self) -> bool:
        return self.status == ListingStatus.PUBLISHED.value

    def to_api_dict(self) -> dict:
        return {
            "id": self.id,
            "sellerId": self.seller_id,
            "displayTitle": self.display_title,
            "askingPriceCents": self.asking_price_cents,
            "currency": self.currency,
            "status": self.status,
            "sellerNotes": self.seller_notes,
            "imageUrl": self.image_url,
            "cardId": self.card_id,
            "gradingCertificateId": self.grading_certificate_id,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "updatedAt": self.updated_at.isoformat() if self.updated_at else None,
        }
