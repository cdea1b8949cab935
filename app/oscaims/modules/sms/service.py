from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import select

from app.oscaims.audit import record_event
from app.oscaims.modules.senior_citizens.models import SeniorCitizen
from app.oscaims.modules.sms.models import SmsMessage
from app.oscaims.modules.templates.models import MessageTemplate
from app.oscaims.modules.templates.service import SMS_MAX_LENGTH, render_body
from app.oscaims.utils import ValidationError, clean_str

if TYPE_CHECKING:
    from sqlalchemy.orm import Session
    from app.oscaims.models import User

_NON_DIGITS = re.compile(r"[^\d]")


def normalize_mobile(raw: Any) -> str | None:
    """
    Normalize a PH mobile number to 09XXXXXXXXX. Accepts +639.., 639.., 9.. and 09..
    with spaces/dashes. Returns None when the input is not a mobile number.
    """
    if raw is None:
        return None
    digits = _NON_DIGITS.sub("", str(raw))
    if digits.startswith("63") and len(digits) == 12:
        digits = "0" + digits[2:]
    elif digits.startswith("9") and len(digits) == 10:
        digits = "0" + digits
    if len(digits) == 11 and digits.startswith("09"):
        return digits
    return None


@dataclass
class SendResult:
    messages: list[SmsMessage] = field(default_factory=list)
    skipped: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "queued": len(self.messages),
            "messages": [m.to_dict() for m in self.messages],
            "skipped": self.skipped,
        }


def _as_list(value: Any) -> list:
    if value is None or value == "":
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [v for v in str(value).split(",") if v.strip()]


def queue_messages(s: "Session", payload: dict, user: "User") -> SendResult:
    """
    Render and queue one outbox row per recipient.

    Recipients come from `recipients` (raw numbers) and/or `senior_citizen_ids`.
    The text is either `message` or the body of `template_id`; {placeholders} are
    filled from `context` plus, for registry recipients, the senior's own fields.
    """
    template: MessageTemplate | None = None
    template_id = payload.get("template_id")
    if template_id not in (None, ""):
        try:
            template = s.get(MessageTemplate, int(template_id))
        except (TypeError, ValueError):
            template = None
        if template is None:
            raise ValidationError("Template not found.")
    body = template.body if template else clean_str(payload.get("message"))
    if not body:
        raise ValidationError("Message or template_id is required.")

    base_context = payload.get("context") or {}
    if not isinstance(base_context, dict):
        raise ValidationError("Context must be an object.")

    result = SendResult()
    targets: list[tuple[str, SeniorCitizen | None]] = []

    for raw in _as_list(payload.get("recipients")):
        number = normalize_mobile(raw)
        if number is None:
            result.skipped.append({"recipient": str(raw), "reason": "invalid number"})
            continue
        targets.append((number, None))

    senior_ids = []
    for raw in _as_list(payload.get("senior_citizen_ids")):
        try:
            senior_ids.append(int(raw))
        except (TypeError, ValueError):
            result.skipped.append({"senior_citizen_id": str(raw), "reason": "invalid id"})
    if senior_ids:
        seniors = s.execute(select(SeniorCitizen).where(SeniorCitizen.id.in_(senior_ids))).scalars().all()
        found = {sc.id: sc for sc in seniors}
        for sid in senior_ids:
            senior = found.get(sid)
            if senior is None:
                result.skipped.append({"senior_citizen_id": sid, "reason": "not found"})
                continue
            if senior.status != "active":
                result.skipped.append({"senior_citizen_id": sid, "reason": f"status {senior.status}"})
                continue
            number = normalize_mobile(senior.contact_number)
            if number is None:
                result.skipped.append({"senior_citizen_id": sid, "reason": "no valid contact number"})
                continue
            targets.append((number, senior))

    if not targets:
        raise ValidationError("No valid recipients.")

    now = datetime.utcnow()
    for number, senior in targets:
        context = dict(base_context)
        if senior is not None:
            context.update(
                first_name=senior.first_name,
                last_name=senior.last_name,
                full_name=senior.full_name,
                osca_id=senior.osca_id,
                barangay=senior.barangay or "",
            )
        text = render_body(body, context)
        if len(text) > SMS_MAX_LENGTH:
            raise ValidationError(f"Rendered message exceeds {SMS_MAX_LENGTH} characters.")
        msg = SmsMessage(
            recipient=number,
            message=text,
            status="queued",
            template_id=template.id if template else None,
            senior_citizen_id=senior.id if senior else None,
            sent_by_user_id=user.id,
            created_at=now,
        )
        s.add(msg)
        result.messages.append(msg)
    s.flush()

    record_event(
        s,
        actor=user,
        action="sms.send",
        entity_type="SmsMessage",
        metadata={
            "queued": len(result.messages),
            "skipped": len(result.skipped),
            "template_id": template.id if template else None,
        },
    )
    return result
