from __future__ import annotations

from flask import Blueprint, request
from sqlalchemy import select

from app.oscaims.db import db_session
from app.oscaims.modules.sms.models import SmsMessage
from app.oscaims.modules.sms.service import queue_messages
from app.oscaims.rbac import current_user, login_required
from app.oscaims.utils import int_arg, request_payload

bp = Blueprint("sms", __name__)


@bp.post("/send")
@login_required
def sms_send():
    s = db_session()
    result = queue_messages(s, request_payload(), current_user())
    s.commit()
    return result.to_dict(), 201


@bp.get("/history")
@login_required
def sms_history():
    s = db_session()
    q = select(SmsMessage)
    senior_id = (request.args.get("senior_citizen_id") or "").strip()
    if senior_id.isdigit():
        q = q.where(SmsMessage.senior_citizen_id == int(senior_id))
    limit = int_arg("limit", 100, minimum=1, maximum=1000)
    rows = s.execute(q.order_by(SmsMessage.id.desc()).limit(limit)).scalars().all()
    return {"messages": [m.to_dict() for m in rows]}
