from __future__ import annotations

from flask import Blueprint, request
from sqlalchemy import select

from app.oscaims.db import db_session
from app.oscaims.models import AuditLog
from app.oscaims.rbac import require_role
from app.oscaims.utils import int_arg

bp = Blueprint("audit_logs", __name__)


@bp.get("/")
@require_role("admin")
def audit_logs_list():
    s = db_session()
    q = select(AuditLog)

    action = (request.args.get("action") or "").strip()
    if action:
        # "senior_citizen" matches every senior_citizen.* action
        q = q.where(
            AuditLog.action.startswith(action, autoescape=True) if "." not in action else AuditLog.action == action
        )
    entity_type = (request.args.get("entity_type") or "").strip()
    if entity_type:
        q = q.where(AuditLog.entity_type == entity_type)
    actor = (request.args.get("actor_user_id") or "").strip()
    if actor.isdigit():
        q = q.where(AuditLog.actor_user_id == int(actor))

    limit = int_arg("limit", 100, minimum=1, maximum=1000)
    offset = int_arg("offset", 0)
    rows = s.execute(q.order_by(AuditLog.id.desc()).limit(limit).offset(offset)).scalars().all()
    return {"audit_logs": [r.to_dict() for r in rows], "limit": limit, "offset": offset}
