"""
Grading reference data ingested from the PSA public API.

- Card: the physical card identity (name, set, number, variety)
- GradingCertificate: one slab, unique per (grading_company, cert_number)
- SalesData: observed sale prices for a graded card
"""
from datetime import datetime
from typing import Optional

from sqlalchemy import String, Float, Boolean, DateTime, ForeignKey, Index, UniqueConstraint, JSON
from sqlalchemy.orm import Mapped, mapped_column

from app.models.user import Base, generate_id


class Card(Base):
    __tablename__ = "cards"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=generate_id)
    game_type: Mapped[str] = mapped_column(String(50), default="POKEMON", nullable=False)
    card_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    set_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    card_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    variety: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    psa_spec_id: Mapped[Optional[str]] = mapped_column(String(50), index=True, nullable=True)
    front_image_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    back_image_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    highest_image_grade: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    def to_api_dict(self) -> dict:
        return {
            "id": self.id,
            "gameType": self.game_type,
            "cardName": self.card_name,
            "setName": self.set_name,
            "cardNumber": self.card_number,
            "variety": self.variety,
            "highestImageGrade": self.highest_image_grade,
            "psaSpecId": self.psa_spec_id,
            "frontImageUrl": self.front_image_url,
            "backImageUrl": self.back_image_url,
        }


class GradingCertificate(Base):
    __tablename__ = "grading_certificates"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=generate_id)
    grading_company: Mapped[str] = mapped_column(String(20), default="PSA", nullable=False)
    cert_number: Mapped[str] = mapped_column(String(50), nullable=False)
    grade: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    grade_label: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    psa_spec_id: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    card_id: Mapped[Optional[str]] = mapped_column(String(32), ForeignKey("cards.id"), nullable=True)
    front_image_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    back_image_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("grading_company", "cert_number", name="uq_grading_company_cert"),
    )

    def to_api_dict(self) -> dict:
        return {
            "id": self.id,
            "gradingCompany": self.grading_company,
            "certNumber": self.cert_number,
            "grade": self.grade,
            "gradeLabel": self.grade_label,
            "cardId": self.card_id,
            "frontImageUrl": self.front_image_url,
            "backImageUrl": self.back_image_url,
        }


class SalesData(Base):
    __tablename__ = "sales_data"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=generate_id)
    card_id: Mapped[Optional[str]] = mapped_column(String(32), ForeignKey("cards.id"), nullable=True)
    grading_certificate_id: Mapped[Optional[str]] = mapped_column(
        String(32), ForeignKey("grading_certificates.id"), nullable=True
    )
    grading_company: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)
    cert_number: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    value: Mapped[float] = mapped_column(Float, nullable=False)
    date: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    is_auction: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    image_url: Mapped[Optional[str]] = mapped_column(String(1024), nullable=True)
    title: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    api_response: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    source: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    source_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        Index("ix_sales_data_card_date", "card_id", "date"),
    )
