from __future__ import annotations

import re
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import select

from app.oscaims.audit import record_event
from app.oscaims.modules.templates.models import MessageTemplate
from app.oscaims.utils import ValidationError, clean_str

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.oscaims.models import User

_PLACEHOLDER_RE = re.compile(r"\{(\w+)\}")

# three SMS segments
SMS_MAX_LENGTH = 160 * 3


def placeholders(body: str) -> list[str]:
    """Distinct placeholder names in order of first appearance."""
    seen: list[str] = []
    for name in _PLACEHOLDER_RE.findall(body or ""):
        if name not in seen:
            seen.append(name)
    return seen


def render_body(body: str, context: dict[str, Any]) -> str:
    """Fill {name} placeholders; unknown ones are left as-is."""

    def _sub(m: re.Match) -> str:
        value = context.get(m.group(1))
        return m.group(0) if value is None else str(value)

    return _PLACEHOLDER_RE.sub(_sub, body)


def validate_template_payload(s: "Session", payload: dict, *, creating: bool, exclude_id: int | None = None) -> dict:
    values: dict = {}
    errors = []
    for key in ("name", "category", "body"):
        if key in payload:
            values[key] = clean_str(payload.get(key))
    if (creating or "name" in values) and not values.get("name"):
        errors.append("Name is required.")
    if (creating or "body" in values) and not values.get("body"):
        errors.append("Body is required.")
    if values.get("body") and len(values["body"]) > SMS_MAX_LENGTH:
        errors.append(f"Body must be at most {SMS_MAX_LENGTH} characters.")
    if values.get("name"):
        q = select(MessageTemplate.id).where(MessageTemplate.name == values["name"])
        if exclude_id is not None:
            q = q.where(MessageTemplate.id != exclude_id)
        if s.execute(q).first():
            errors.append(f"A template named '{values['name']}' already exists.")
    if errors:
        raise ValidationError(errors)
    return values


def create_template(s: "Session", payload: dict, user: "User") -> MessageTemplate:
    values = validate_template_payload(s, payload, creating=True)
    now = datetime.utcnow()
    tpl = MessageTemplate(**values, created_at=now, updated_at=now, created_by_user_id=user.id)
    s.add(tpl)
    s.flush()
    record_event(s, actor=user, action="template.create", entity_type="Template", entity_id=str(tpl.id),
                 metadata={"name": tpl.name})
    return tpl


def update_template(s: "Session", tpl: MessageTemplate, payload: dict, user: "User") -> MessageTemplate:
    values = validate_template_payload(s, payload, creating=False, exclude_id=tpl.id)
    changed = [k for k, v in values.items() if getattr(tpl, k) != v]
    for key in changed:
        setattr(tpl, key, values[key])
    tpl.updated_at = datetime.utcnow()
    record_event(s, actor=user, action="template.edit", entity_type="Template", entity_id=str(tpl.id),
                 metadata={"name": tpl.name, "changed": changed})
    return tpl


def delete_template(s: "Session", tpl: MessageTemplate, user: "User") -> None:
    record_event(s, actor=user, action="template.delete", entity_type="Template", entity_id=str(tpl.id),
                 metadata={"name": tpl.name})
    s.delete(tpl)
