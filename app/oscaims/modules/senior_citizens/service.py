from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, or_, select

from app.oscaims.audit import record_event
from app.oscaims.modules.senior_citizens.models import CIVIL_STATUSES, SENIOR_STATUSES, SEXES, SeniorCitizen, age_on
from app.oscaims.utils import ValidationError, clean_str, parse_date

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.oscaims.models import User

# Registry eligibility (RA 9994)
MINIMUM_AGE = 60

TEXT_FIELDS = (
    "osca_id",
    "first_name",
    "middle_name",
    "last_name",
    "sex",
    "civil_status",
    "address",
    "barangay",
    "contact_number",
    "status",
    "remarks",
)
REQUIRED_FIELDS = ("osca_id", "first_name", "last_name", "birthdate")


def validate_senior_payload(payload: dict, *, creating: bool, today: date | None = None) -> dict:
    """Validate and normalize a create/update payload. Raises ValidationError."""
    today = today or date.today()
    values: dict = {}
    errors: list[str] = []

    for key in TEXT_FIELDS:
        if key in payload:
            values[key] = clean_str(payload.get(key))
    for key in ("sex", "civil_status", "status"):
        if values.get(key):
            values[key] = values[key].lower()
    bad_birthdate = False
    if "birthdate" in payload:
        try:
            values["birthdate"] = parse_date(payload.get("birthdate"), "birthdate")
        except ValidationError as e:
            errors.extend(e.errors)
            bad_birthdate = True

    for key in REQUIRED_FIELDS:
        if not (creating or key in payload) or (key == "birthdate" and bad_birthdate):
            continue
        if not values.get(key):
            errors.append(f"{key.replace('_', ' ').capitalize()} is required.")

    if values.get("sex") and values["sex"] not in SEXES:
        errors.append(f"Invalid sex. Must be one of: {', '.join(SEXES)}")
    if values.get("civil_status") and values["civil_status"] not in CIVIL_STATUSES:
        errors.append(f"Invalid civil status. Must be one of: {', '.join(CIVIL_STATUSES)}")
    if values.get("status") and values["status"] not in SENIOR_STATUSES:
        errors.append(f"Invalid status. Must be one of: {', '.join(SENIOR_STATUSES)}")
    if "status" in values and not values["status"]:
        del values["status"]

    birthdate = values.get("birthdate")
    if birthdate:
        if birthdate > today:
            errors.append("Birthdate cannot be in the future.")
        elif age_on(birthdate, today) < MINIMUM_AGE:
            errors.append(f"Registrant must be at least {MINIMUM_AGE} years old.")

    if errors:
        raise ValidationError(errors)
    return values


def _ensure_unique_osca_id(s: "Session", osca_id: str, exclude_id: int | None = None) -> None:
    q = select(SeniorCitizen.id).where(SeniorCitizen.osca_id == osca_id)
    if exclude_id is not None:
        q = q.where(SeniorCitizen.id != exclude_id)
    if s.execute(q).first():
        raise ValidationError(f"OSCA ID {osca_id} is already registered.")


def create_senior(s: "Session", payload: dict, user: "User") -> SeniorCitizen:
    values = validate_senior_payload(payload, creating=True)
    _ensure_unique_osca_id(s, values["osca_id"])

    now = datetime.utcnow()
    senior = SeniorCitizen(
        **values,
        created_at=now,
        updated_at=now,
        created_by_user_id=user.id,
        updated_by_user_id=user.id,
    )
    s.add(senior)
    s.flush()

    record_event(
        s,
        actor=user,
        action="senior_citizen.create",
        entity_type="SeniorCitizen",
        entity_id=str(senior.id),
        metadata={"osca_id": senior.osca_id, "name": senior.full_name},
    )
    return senior


def update_senior(s: "Session", senior: SeniorCitizen, payload: dict, user: "User", reason: str | None = None) -> SeniorCitizen:
    values = validate_senior_payload(payload, creating=False)
    if values.get("osca_id") and values["osca_id"] != senior.osca_id:
        _ensure_unique_osca_id(s, values["osca_id"], exclude_id=senior.id)

    changes = {}
    for key, new in values.items():
        old = getattr(senior, key)
        if new != old:
            changes[key] = {"old": str(old) if old is not None else None, "new": str(new) if new is not None else None}
            setattr(senior, key, new)

    # Require reason if status changes
    if "status" in changes and not reason:
        raise ValidationError("Reason for change is required when changing status.")

    senior.updated_at = datetime.utcnow()
    senior.updated_by_user_id = user.id

    record_event(
        s,
        actor=user,
        action="senior_citizen.edit",
        entity_type="SeniorCitizen",
        entity_id=str(senior.id),
        reason=reason,
        metadata={"osca_id": senior.osca_id, "changes": changes},
    )
    return senior


def archive_senior(s: "Session", senior: SeniorCitizen, user: "User", reason: str | None) -> SeniorCitizen:
    """Soft-delete: records are archived, never removed."""
    if not reason:
        raise ValidationError("Reason is required to archive a record.")
    old_status = senior.status
    senior.status = "archived"
    senior.updated_at = datetime.utcnow()
    senior.updated_by_user_id = user.id
    record_event(
        s,
        actor=user,
        action="senior_citizen.archive",
        entity_type="SeniorCitizen",
        entity_id=str(senior.id),
        reason=reason,
        metadata={"osca_id": senior.osca_id, "old_status": old_status},
    )
    return senior


def search_seniors(
    s: "Session",
    *,
    search: str = "",
    barangay: str = "",
    status: str = "",
    include_archived: bool = False,
    limit: int = 50,
    offset: int = 0,
) -> tuple[list[SeniorCitizen], int]:
    q = select(SeniorCitizen)
    if search:
        like = f"%{search}%"
        q = q.where(
            or_(
                SeniorCitizen.osca_id.ilike(like),
                SeniorCitizen.first_name.ilike(like),
                SeniorCitizen.last_name.ilike(like),
            )
        )
    if barangay:
        q = q.where(SeniorCitizen.barangay == barangay)
    if status:
        q = q.where(SeniorCitizen.status == status)
    elif not include_archived:
        q = q.where(SeniorCitizen.status != "archived")

    total = s.execute(select(func.count()).select_from(q.subquery())).scalar_one()
    rows = (
        s.execute(q.order_by(SeniorCitizen.last_name.asc(), SeniorCitizen.first_name.asc()).limit(limit).offset(offset))
        .scalars()
        .all()
    )
    return list(rows), total


def registry_stats(s: "Session") -> dict:
    by_status = dict(
        s.execute(select(SeniorCitizen.status, func.count()).group_by(SeniorCitizen.status)).all()
    )
    by_barangay = dict(
        s.execute(
            select(SeniorCitizen.barangay, func.count())
            .where(SeniorCitizen.status == "active")
            .where(SeniorCitizen.barangay.isnot(None))
            .group_by(SeniorCitizen.barangay)
        ).all()
    )
    return {
        "total": sum(by_status.values()),
        "by_status": {k: by_status.get(k, 0) for k in SENIOR_STATUSES},
        "active_by_barangay": by_barangay,
    }
