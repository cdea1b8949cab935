from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from app.oscaims.audit import record_event
from app.oscaims.utils import ValidationError, clean_str, parse_date

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.oscaims.models import User
    from app.oscaims.modules.officials.models import Official

EDITABLE_FIELDS = ("name", "position", "term_start", "term_end", "contact_number", "photo_path", "is_active")


def _parse_bool(value) -> bool:
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _normalize(payload: dict) -> dict:
    out: dict = {}
    for key in EDITABLE_FIELDS:
        if key not in payload:
            continue
        if key in ("term_start", "term_end"):
            out[key] = parse_date(payload.get(key), key)
        elif key == "is_active":
            out[key] = _parse_bool(payload.get(key))
        else:
            out[key] = clean_str(payload.get(key))
    return out


def validate_official_payload(payload: dict, *, creating: bool) -> dict:
    """Validate and normalize payload. Raises ValidationError."""
    values = _normalize(payload)
    errors = []
    if creating or "name" in values:
        if not values.get("name"):
            errors.append("Name is required.")
    if creating or "position" in values:
        if not values.get("position"):
            errors.append("Position is required.")
    start, end = values.get("term_start"), values.get("term_end")
    if start and end and end < start:
        errors.append("Term end must not be before term start.")
    if errors:
        raise ValidationError(errors)
    return values


def create_official(s: "Session", payload: dict, user: "User") -> "Official":
    from app.oscaims.modules.officials.models import Official

    values = validate_official_payload(payload, creating=True)
    now = datetime.utcnow()
    official = Official(
        **values,
        created_at=now,
        updated_at=now,
        created_by_user_id=user.id,
        updated_by_user_id=user.id,
    )
    s.add(official)
    s.flush()

    record_event(
        s,
        actor=user,
        action="official.create",
        entity_type="Official",
        entity_id=str(official.id),
        metadata={"name": official.name, "position": official.position},
    )
    return official


def update_official(s: "Session", official: "Official", payload: dict, user: "User") -> "Official":
    values = validate_official_payload(payload, creating=False)
    changes = {}
    for key, new in values.items():
        old = getattr(official, key)
        if new != old:
            changes[key] = {"old": old, "new": new}
            setattr(official, key, new)

    if official.term_start and official.term_end and official.term_end < official.term_start:
        raise ValidationError("Term end must not be before term start.")

    official.updated_at = datetime.utcnow()
    official.updated_by_user_id = user.id

    record_event(
        s,
        actor=user,
        action="official.edit",
        entity_type="Official",
        entity_id=str(official.id),
        metadata={"name": official.name, "changes": changes},
    )
    return official


def delete_official(s: "Session", official: "Official", user: "User") -> None:
    record_event(
        s,
        actor=user,
        action="official.delete",
        entity_type="Official",
        entity_id=str(official.id),
        metadata={"name": official.name, "position": official.position},
    )
    s.delete(official)
