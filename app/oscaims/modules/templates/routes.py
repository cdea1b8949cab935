from __future__ import annotations

from flask import Blueprint, abort, request
from sqlalchemy import select

from app.oscaims.db import db_session
from app.oscaims.modules.templates.models import MessageTemplate
from app.oscaims.modules.templates.service import create_template, delete_template, update_template
from app.oscaims.rbac import current_user, login_required
from app.oscaims.utils import request_payload

bp = Blueprint("templates", __name__)


def _get_or_404(template_id: int) -> MessageTemplate:
    tpl = db_session().get(MessageTemplate, template_id)
    if not tpl:
        abort(404)
    return tpl


@bp.get("/")
@login_required
def templates_list():
    s = db_session()
    q = select(MessageTemplate)
    category = (request.args.get("category") or "").strip()
    if category:
        q = q.where(MessageTemplate.category == category)
    rows = s.execute(q.order_by(MessageTemplate.name.asc())).scalars().all()
    return {"templates": [t.to_dict() for t in rows]}


@bp.get("/<int:template_id>")
@login_required
def template_detail(template_id: int):
    return _get_or_404(template_id).to_dict()


@bp.post("/")
@login_required
def template_create():
    s = db_session()
    tpl = create_template(s, request_payload(), current_user())
    s.commit()
    return tpl.to_dict(), 201


@bp.put("/<int:template_id>")
@login_required
def template_update(template_id: int):
    s = db_session()
    tpl = update_template(s, _get_or_404(template_id), request_payload(), current_user())
    s.commit()
    return tpl.to_dict()


@bp.delete("/<int:template_id>")
@login_required
def template_delete(template_id: int):
    s = db_session()
    delete_template(s, _get_or_404(template_id), current_user())
    s.commit()
    return {"message": "Template deleted"}
