from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.oscaims.models import Base


class SmsMessage(Base):
    """
    Outbox row, one per recipient.
    """

    __tablename__ = "sms_messages"
    __table_args__ = (
        Index("idx_sms_messages_created_at", "created_at"),
        Index("idx_sms_messages_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    recipient: Mapped[str] = mapped_column(String(32), nullable=False)  # normalized 09XXXXXXXXX
    message: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="queued")

    template_id: Mapped[int | None] = mapped_column(ForeignKey("templates.id", ondelete="SET NULL"), nullable=True)
    senior_citizen_id: Mapped[int | None] = mapped_column(
        ForeignKey("senior_citizens.id", ondelete="SET NULL"), nullable=True
    )
    sent_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "recipient": self.recipient,
            "message": self.message,
            "status": self.status,
            "template_id": self.template_id,
            "senior_citizen_id": self.senior_citizen_id,
            "sent_by_user_id": self.sent_by_user_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
