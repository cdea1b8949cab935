from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import Date, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.oscaims.models import Base

SENIOR_STATUSES = ("active", "deceased", "transferred", "archived")
SEXES = ("male", "female")
CIVIL_STATUSES = ("single", "married", "widowed", "separated")


def age_on(birthdate: date, today: date) -> int:
    years = today.year - birthdate.year
    if (today.month, today.day) < (birthdate.month, birthdate.day):
        years -= 1
    return years


class SeniorCitizen(Base):
    __tablename__ = "senior_citizens"
    __table_args__ = (
        Index("idx_senior_citizens_last_name", "last_name"),
        Index("idx_senior_citizens_barangay", "barangay"),
        Index("idx_senior_citizens_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    osca_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    first_name: Mapped[str] = mapped_column(String(128), nullable=False)
    middle_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    last_name: Mapped[str] = mapped_column(String(128), nullable=False)
    birthdate: Mapped[date] = mapped_column(Date, nullable=False)
    sex: Mapped[str | None] = mapped_column(String(16), nullable=True)
    civil_status: Mapped[str | None] = mapped_column(String(32), nullable=True)

    address: Mapped[str | None] = mapped_column(Text, nullable=True)
    barangay: Mapped[str | None] = mapped_column(String(128), nullable=True)
    contact_number: Mapped[str | None] = mapped_column(String(32), nullable=True)

    status: Mapped[str] = mapped_column(String(32), nullable=False, default="active")
    remarks: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False, default=datetime.utcnow)
    created_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    updated_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    @property
    def full_name(self) -> str:
        parts = [self.first_name, self.middle_name, self.last_name]
        return " ".join(p for p in parts if p)

    def to_dict(self, today: date | None = None) -> dict:
        today = today or date.today()
        return {
            "id": self.id,
            "osca_id": self.osca_id,
            "first_name": self.first_name,
            "middle_name": self.middle_name,
            "last_name": self.last_name,
            "full_name": self.full_name,
            "birthdate": self.birthdate.isoformat(),
            "age": age_on(self.birthdate, today),
            "sex": self.sex,
            "civil_status": self.civil_status,
            "address": self.address,
            "barangay": self.barangay,
            "contact_number": self.contact_number,
            "status": self.status,
            "remarks": self.remarks,
        }
