from __future__ import annotations

from flask import Blueprint, abort, request

from app.oscaims.db import db_session
from app.oscaims.modules.senior_citizens.models import SeniorCitizen
from app.oscaims.modules.senior_citizens.service import (
    archive_senior,
    create_senior,
    registry_stats,
    search_seniors,
    update_senior,
)
from app.oscaims.rbac import current_user, login_required
from app.oscaims.utils import clean_str, int_arg, request_payload

bp = Blueprint("senior_citizens", __name__)


def _get_or_404(senior_id: int) -> SeniorCitizen:
    senior = db_session().get(SeniorCitizen, senior_id)
    if not senior:
        abort(404)
    return senior


# ---------- List ----------
@bp.get("/")
@login_required
def seniors_list():
    s = db_session()
    limit = int_arg("limit", 50, minimum=1, maximum=500)
    offset = int_arg("offset", 0)
    rows, total = search_seniors(
        s,
        search=(request.args.get("q") or "").strip(),
        barangay=(request.args.get("barangay") or "").strip(),
        status=(request.args.get("status") or "").strip().lower(),
        include_archived=(request.args.get("include_archived") or "").strip() == "1",
        limit=limit,
        offset=offset,
    )
    return {
        "senior_citizens": [r.to_dict() for r in rows],
        "total": total,
        "limit": limit,
        "offset": offset,
    }


@bp.get("/stats")
@login_required
def seniors_stats():
    return registry_stats(db_session())


# ---------- Detail ----------
@bp.get("/<int:senior_id>")
@login_required
def senior_detail(senior_id: int):
    return _get_or_404(senior_id).to_dict()


# ---------- Create / Edit ----------
@bp.post("/")
@login_required
def senior_create():
    s = db_session()
    senior = create_senior(s, request_payload(), current_user())
    s.commit()
    return senior.to_dict(), 201


@bp.put("/<int:senior_id>")
@login_required
def senior_update(senior_id: int):
    s = db_session()
    payload = request_payload()
    senior = update_senior(s, _get_or_404(senior_id), payload, current_user(), reason=clean_str(payload.get("reason")))
    s.commit()
    return senior.to_dict()


# ---------- Archive ----------
@bp.delete("/<int:senior_id>")
@login_required
def senior_archive(senior_id: int):
    s = db_session()
    payload = request_payload() if request.content_length else {}
    reason = clean_str(payload.get("reason")) or clean_str(request.args.get("reason"))
    senior = archive_senior(s, _get_or_404(senior_id), current_user(), reason)
    s.commit()
    return senior.to_dict()
