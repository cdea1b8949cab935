from __future__ import annotations

import threading
import uuid
from datetime import datetime, timedelta

from flask import Blueprint, abort, current_app, g, request, session
from sqlalchemy import select
from werkzeug.security import check_password_hash, generate_password_hash

from app.oscaims.audit import record_event
from app.oscaims.db import db_session
from app.oscaims.models import USER_ROLES, USER_STATUSES, User
from app.oscaims.rbac import current_user, login_required, require_role
from app.oscaims.utils import ValidationError, clean_str, request_payload

bp = Blueprint("auth", __name__)
_login_attempts: dict[str, list[datetime]] = {}
_login_attempts_lock = threading.Lock()
_LOGIN_RATE_LIMIT = 5
_LOGIN_RATE_WINDOW = 300  # seconds


def _check_rate_limit(ip: str) -> bool:
    cutoff = datetime.utcnow() - timedelta(seconds=_LOGIN_RATE_WINDOW)
    with _login_attempts_lock:
        recent = [t for t in _login_attempts.get(ip, ()) if t > cutoff]
        if recent:
            _login_attempts[ip] = recent
        else:
            _login_attempts.pop(ip, None)
        return len(recent) >= _LOGIN_RATE_LIMIT


def _record_attempt(ip: str) -> None:
    with _login_attempts_lock:
        _login_attempts.setdefault(ip, []).append(datetime.utcnow())


def _reset_attempts(ip: str) -> None:
    with _login_attempts_lock:
        _login_attempts.pop(ip, None)


def load_current_user() -> None:
    """
    Loads g.current_user from the server-side session.
    Also assigns a per-request request_id (for audit/log correlation).
    """
    if not getattr(g, "request_id", None):
        g.request_id = uuid.uuid4().hex
    g.current_user = None
    if request.path.startswith(("/uploads/", "/health")) or request.method == "OPTIONS":
        return

    sess_user = session.get("user")
    user_id = sess_user.get("id") if isinstance(sess_user, dict) else None
    if not user_id:
        return

    try:
        user = db_session().get(User, int(user_id))
    except Exception as e:
        current_app.logger.error("load_current_user DB error (clearing session): %s", e)
        session.pop("user", None)
        return
    if not user:
        session.pop("user", None)
        return
    g.current_user = user


def validate_user_payload(payload: dict, *, creating: bool) -> list[str]:
    errors = []
    if creating:
        if not clean_str(payload.get("username")):
            errors.append("Username is required.")
        if len(payload.get("password") or "") < 8:
            errors.append("Password must be at least 8 characters.")
    role = clean_str(payload.get("role"))
    if role and role not in USER_ROLES:
        errors.append(f"Invalid role. Must be one of: {', '.join(USER_ROLES)}")
    return errors


@bp.post("/register")
@require_role("admin")
def register():
    s = db_session()
    payload = request_payload()
    errors = validate_user_payload(payload, creating=True)
    if errors:
        raise ValidationError(errors)

    username = clean_str(payload.get("username")).lower()  # type: ignore[union-attr]
    if s.execute(select(User.id).where(User.username == username)).first():
        abort(409, description="Username already taken.")

    now = datetime.utcnow()
    user = User(
        username=username,
        password_hash=generate_password_hash(payload["password"]),
        full_name=clean_str(payload.get("full_name")),
        role=clean_str(payload.get("role")) or "staff",
        status="inactive",
        created_at=now,
        updated_at=now,
    )
    s.add(user)
    s.flush()
    record_event(s, actor=current_user(), action="user.create", entity_type="User", entity_id=str(user.id),
                 metadata={"username": user.username, "role": user.role})
    s.commit()
    return user.to_dict(), 201


@bp.post("/login")
def login():
    payload = request_payload()
    username = (clean_str(payload.get("username")) or "").lower()
    password = payload.get("password") or ""
    ip = request.remote_addr or "unknown"

    if _check_rate_limit(ip):
        abort(429, description="Too many login attempts. Please wait 5 minutes.")

    _record_attempt(ip)

    s = db_session()
    user = s.execute(select(User).where(User.username == username)).scalar_one_or_none()
    if not user or not check_password_hash(user.password_hash, password):
        record_event(
            s,
            actor=None,
            action="user.login_failed",
            entity_type="User",
            entity_id=username,
            reason="Invalid credentials",
        )
        s.commit()
        abort(401, description="Invalid credentials.")

    now = datetime.utcnow()
    user.status = "active"
    user.last_login_at = now
    user.updated_at = now
    session["user"] = {"id": user.id, "username": user.username, "role": user.role}
    _reset_attempts(ip)
    record_event(s, actor=user, action="user.login", entity_type="User", entity_id=str(user.id))
    s.commit()
    current_app.logger.info("User %s logged in (request_id=%s)", user.username, g.request_id)
    return {"message": "Login successful", "user": user.to_dict()}


@bp.post("/logout")
def logout():
    user = getattr(g, "current_user", None)
    if user:
        s = db_session()
        user.status = "inactive"
        user.updated_at = datetime.utcnow()
        record_event(s, actor=user, action="user.logout", entity_type="User", entity_id=str(user.id))
        s.commit()
    session.clear()
    return {"message": "Logged out"}


@bp.get("/me")
@login_required
def me():
    return {"user": current_user().to_dict()}


@bp.get("/")
@require_role("admin")
def users_list():
    s = db_session()
    users = s.execute(select(User).order_by(User.username.asc())).scalars().all()
    return {"users": [u.to_dict() for u in users]}


@bp.patch("/<int:user_id>/status")
@require_role("admin")
def user_status_update(user_id: int):
    s = db_session()
    user = s.get(User, user_id)
    if not user:
        abort(404)
    payload = request_payload()
    status = clean_str(payload.get("status"))
    if status not in USER_STATUSES:
        raise ValidationError(f"Invalid status. Must be one of: {', '.join(USER_STATUSES)}")

    old_status = user.status
    user.status = status
    user.updated_at = datetime.utcnow()
    record_event(
        s,
        actor=current_user(),
        action="user.status_change",
        entity_type="User",
        entity_id=str(user.id),
        reason=clean_str(payload.get("reason")),
        metadata={"old": old_status, "new": status},
    )
    s.commit()
    return user.to_dict()
