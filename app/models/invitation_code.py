from datetime import datetime
from typing import Optional

from sqlalchemy import String, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from app.models.user import Base, generate_id


class InvitationCode(Base):
    """Single-use signup code. A user can hold at most one (unique used_by)."""

    __tablename__ = "invitation_codes"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=generate_id)
    code: Mapped[str] = mapped_column(String(64), unique=True, index=True, nullable=False)
    created_by: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    used_by: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)
    used_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)

    @property
    def is_used(self) -> bool:
        return self.used_by is not None

    def to_api_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "createdBy": self.created_by,
            "usedBy": self.used_by,
            "usedAt": self.used_at.isoformat() if self.used_at else None,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }
