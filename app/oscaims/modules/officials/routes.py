from __future__ import annotations

from flask import Blueprint, abort, request
from sqlalchemy import select

from app.oscaims.db import db_session
from app.oscaims.modules.officials.models import Official
from app.oscaims.modules.officials.service import create_official, delete_official, update_official
from app.oscaims.rbac import current_user, login_required
from app.oscaims.utils import request_payload

bp = Blueprint("officials", __name__)


def _get_or_404(official_id: int) -> Official:
    official = db_session().get(Official, official_id)
    if not official:
        abort(404)
    return official


@bp.get("/")
def officials_list():
    s = db_session()
    q = select(Official)
    if (request.args.get("active") or "").strip() == "1":
        q = q.where(Official.is_active.is_(True))
    officials = s.execute(q.order_by(Official.position.asc(), Official.name.asc())).scalars().all()
    return {"officials": [o.to_dict() for o in officials]}


@bp.get("/<int:official_id>")
def official_detail(official_id: int):
    return _get_or_404(official_id).to_dict()


@bp.post("/")
@login_required
def official_create():
    s = db_session()
    official = create_official(s, request_payload(), current_user())
    s.commit()
    return official.to_dict(), 201


@bp.put("/<int:official_id>")
@login_required
def official_update(official_id: int):
    s = db_session()
    official = update_official(s, _get_or_404(official_id), request_payload(), current_user())
    s.commit()
    return official.to_dict()


@bp.delete("/<int:official_id>")
@login_required
def official_delete(official_id: int):
    s = db_session()
    delete_official(s, _get_or_404(official_id), current_user())
    s.commit()
    return {"message": "Official deleted"}
