"""
Server-side sessions kept in the `sessions` table.

The browser only ever holds a signed session id (cookie `oscaims_sid`); the payload
lives in the database as JSON alongside a serialized copy of the cookie, so that
background jobs (see app.oscaims.sweep) can tell which sessions have expired
without a request in hand.
"""
from __future__ import annotations

import json
import logging
import secrets
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any

from flask import Flask, Request, Response
from flask.sessions import SessionInterface, SessionMixin
from itsdangerous import BadSignature, Signer
from sqlalchemy import delete, select
from sqlalchemy.orm import Session
from werkzeug.datastructures import CallbackDict

from app.oscaims.models import SessionRecord

logger = logging.getLogger(__name__)

COOKIE_KEY = "cookie"


class SessionStoreError(RuntimeError):
    pass


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_epoch(dt: datetime) -> int:
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp())


class SqlSessionStore:
    """
    Session persistence over a SQLAlchemy sessionmaker. Each call uses its own
    short-lived DB session so it is safe from request threads and the sweep thread.
    """

    def __init__(self, sessionmaker: Callable[[], Session]):
        self._sessionmaker = sessionmaker

    @contextmanager
    def _scope(self) -> Iterator[Session]:
        s = self._sessionmaker()
        try:
            yield s
            s.commit()
        except Exception as e:
            s.rollback()
            raise SessionStoreError(f"Session store operation failed: {e}") from e
        finally:
            s.close()

    def get(self, sid: str, *, now: datetime | None = None) -> dict[str, Any] | None:
        """Payload for `sid`, or None when missing, expired or unreadable."""
        now = now or utcnow()
        with self._scope() as s:
            row = s.get(SessionRecord, sid)
            if row is None or row.expires < _to_epoch(now):
                return None
            raw = row.data
        try:
            payload = json.loads(raw or "{}")
        except ValueError:
            logger.warning("Discarding unreadable session payload sid=%s", sid[:8])
            return None
        return payload if isinstance(payload, dict) else None

    def set(self, sid: str, payload: dict[str, Any], expires_at: datetime) -> None:
        data = json.dumps(payload, default=str)
        with self._scope() as s:
            row = s.get(SessionRecord, sid)
            if row is None:
                s.add(SessionRecord(session_id=sid, expires=_to_epoch(expires_at), data=data))
            else:
                row.expires = _to_epoch(expires_at)
                row.data = data

    def destroy(self, sid: str) -> None:
        with self._scope() as s:
            s.execute(delete(SessionRecord).where(SessionRecord.session_id == sid))

    def all(self) -> dict[str, Any]:
        """
        Every stored session, expired ones included, as {session_id: payload}.
        Rows whose data is not valid JSON are left out.
        """
        out: dict[str, Any] = {}
        with self._scope() as s:
            rows = s.execute(select(SessionRecord.session_id, SessionRecord.data)).all()
        for sid, raw in rows:
            try:
                out[sid] = json.loads(raw or "{}")
            except ValueError:
                logger.warning("Skipping unreadable session payload sid=%s", sid[:8])
        return out

    def clear_expired(self, now: datetime | None = None) -> int:
        now = now or utcnow()
        with self._scope() as s:
            result = s.execute(delete(SessionRecord).where(SessionRecord.expires < _to_epoch(now)))
            return result.rowcount or 0


class ServerSession(CallbackDict, SessionMixin):
    def __init__(self, initial: dict[str, Any] | None = None, sid: str | None = None, new: bool = False):
        def on_update(self):
            self.modified = True

        CallbackDict.__init__(self, initial, on_update)
        self.sid = sid
        self.new = new
        self.modified = False


class SqlSessionInterface(SessionInterface):
    """
    Flask session interface backed by SqlSessionStore.

    Nothing is stored (and no cookie is sent) until a request writes to the session.
    Modified sessions are re-saved with a fresh expiry; emptied sessions are destroyed.
    """

    salt = "oscaims-session"

    def __init__(self, store: SqlSessionStore):
        self.store = store

    def _signer(self, app: Flask) -> Signer:
        return Signer(app.secret_key, salt=self.salt)

    def _new_sid(self) -> str:
        return secrets.token_urlsafe(32)

    def open_session(self, app: Flask, request: Request) -> ServerSession:
        cookie_val = request.cookies.get(self.get_cookie_name(app))
        if not cookie_val:
            return ServerSession(sid=self._new_sid(), new=True)
        try:
            sid = self._signer(app).unsign(cookie_val).decode("utf-8")
        except BadSignature:
            logger.debug("Rejected session cookie with bad signature")
            return ServerSession(sid=self._new_sid(), new=True)

        payload = self.store.get(sid)
        if payload is None:
            return ServerSession(sid=self._new_sid(), new=True)
        payload.pop(COOKIE_KEY, None)
        return ServerSession(payload, sid=sid)

    def cookie_meta(self, app: Flask, expires_at: datetime) -> dict[str, Any]:
        """Serialized cookie stored with the payload (read by the expiry sweep)."""
        max_age = app.config["SESSION_MAX_AGE_SECONDS"]
        return {
            "originalMaxAge": max_age * 1000,
            "expires": expires_at.isoformat().replace("+00:00", "Z"),
            "httpOnly": self.get_cookie_httponly(app),
            "secure": self.get_cookie_secure(app),
            "sameSite": (self.get_cookie_samesite(app) or "").lower() or None,
            "path": self.get_cookie_path(app),
        }

    def save_session(self, app: Flask, session: ServerSession, response: Response) -> None:  # type: ignore[override]
        # open_session failed; there is nothing to save
        if not isinstance(session, ServerSession):
            return

        name = self.get_cookie_name(app)
        domain = self.get_cookie_domain(app)
        path = self.get_cookie_path(app)

        if not session:
            if session.modified and not session.new:
                self.store.destroy(session.sid)
                response.delete_cookie(name, domain=domain, path=path)
            return

        if not session.modified:
            return

        max_age = app.config["SESSION_MAX_AGE_SECONDS"]
        expires_at = utcnow() + timedelta(seconds=max_age)
        payload = dict(session)
        payload[COOKIE_KEY] = self.cookie_meta(app, expires_at)
        self.store.set(session.sid, payload, expires_at)

        signed = self._signer(app).sign(session.sid.encode("utf-8")).decode("utf-8")
        response.set_cookie(
            name,
            signed,
            max_age=max_age,
            expires=expires_at,
            httponly=self.get_cookie_httponly(app),
            secure=self.get_cookie_secure(app),
            samesite=self.get_cookie_samesite(app),
            domain=domain,
            path=path,
        )
        response.vary.add("Cookie")
