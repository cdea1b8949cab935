from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.oscaims.models import Base


class MessageTemplate(Base):
    __tablename__ = "templates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    category: Mapped[str | None] = mapped_column(String(64), nullable=True)  # e.g. "pension", "event"
    body: Mapped[str] = mapped_column(Text, nullable=False)  # may contain {placeholders}

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    def to_dict(self) -> dict:
        from app.oscaims.modules.templates.service import placeholders

        return {
            "id": self.id,
            "name": self.name,
            "category": self.category,
            "body": self.body,
            "placeholders": placeholders(self.body),
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
