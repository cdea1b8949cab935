"""
Session expiry sweep.

Periodically reconciles stored sessions with user status: any user referenced by a
session whose cookie has expired is marked inactive in one batched update. This is
polling-based and eventually consistent; a run that fails is logged and the next
tick tries again.
"""
from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Protocol

from flask import Flask
from sqlalchemy import update

from app.oscaims.db import session_scope
from app.oscaims.models import User

logger = logging.getLogger(__name__)

# epoch values above this are milliseconds (year 5138 in seconds)
_EPOCH_MS_THRESHOLD = 100_000_000_000


class SessionSource(Protocol):
    def all(self) -> Any: ...


def parse_expires(value: Any) -> datetime | None:
    """
    Normalize a stored cookie expiry to an aware UTC datetime.

    Accepts ISO-8601 strings (a trailing "Z" included), datetimes (naive ones are
    taken as UTC) and epoch numbers in seconds or milliseconds. Returns None for
    missing values; raises ValueError for anything unparseable.
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"Unsupported expires value: {value!r}")
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)):
        seconds = value / 1000 if abs(value) > _EPOCH_MS_THRESHOLD else value
        dt = datetime.fromtimestamp(seconds, tz=timezone.utc)
    elif isinstance(value, str):
        raw = value.strip()
        if raw.endswith("Z"):
            raw = raw[:-1] + "+00:00"
        dt = datetime.fromisoformat(raw)
    else:
        raise ValueError(f"Unsupported expires value: {value!r}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class SweepResult:
    skipped: bool = False
    sessions_seen: int = 0
    expired_sessions: int = 0
    user_ids: list[Any] = field(default_factory=list)
    malformed: int = 0
    error: str | None = None

    @property
    def deactivated(self) -> int:
        return len(self.user_ids)


def collect_expired_user_ids(sessions: Mapping[str, Any], now: datetime) -> tuple[list[Any], int, int]:
    """
    Distinct user ids (first-seen order) of sessions whose cookie expired before `now`.
    Returns (user_ids, expired_session_count, malformed_count).
    """
    user_ids: list[Any] = []
    seen: set[Any] = set()
    expired = 0
    malformed = 0
    for sid, sess in sessions.items():
        if not isinstance(sess, Mapping):
            malformed += 1
            logger.warning("Skipping malformed session payload sid=%s type=%s", str(sid)[:8], type(sess).__name__)
            continue
        cookie = sess.get("cookie")
        if not isinstance(cookie, Mapping):
            continue
        try:
            expires = parse_expires(cookie.get("expires"))
        except (TypeError, ValueError, OverflowError, OSError):
            malformed += 1
            logger.warning("Skipping session with unparseable expires sid=%s", str(sid)[:8])
            continue
        if expires is None or expires >= now:
            continue
        expired += 1
        user = sess.get("user")
        uid = user.get("id") if isinstance(user, Mapping) else None
        if not uid:
            continue
        if isinstance(uid, bool) or not isinstance(uid, (int, str)):
            malformed += 1
            logger.warning("Skipping session with non-scalar user id sid=%s type=%s", str(sid)[:8], type(uid).__name__)
            continue
        if uid not in seen:
            seen.add(uid)
            user_ids.append(uid)
    return user_ids, expired, malformed


class SessionExpirySweep:
    """
    One sweep = read all sessions, find expired ones, deactivate their users.

    Dependencies are injected so the sweep can be driven without a timer:
    `store` needs an `all()` method, `deactivate_users` receives the distinct ids,
    `clock` returns an aware UTC datetime.
    """

    def __init__(
        self,
        store: SessionSource,
        deactivate_users: Callable[[Sequence[Any]], Any],
        *,
        clock: Callable[[], datetime] = _utcnow,
        after_sweep: Callable[[datetime], Any] | None = None,
    ):
        self.store = store
        self.deactivate_users = deactivate_users
        self.clock = clock
        self.after_sweep = after_sweep
        self._running = threading.Lock()

    @property
    def in_progress(self) -> bool:
        return self._running.locked()

    def run_once(self) -> SweepResult:
        if not self._running.acquire(blocking=False):
            logger.warning("Session sweep still running; skipping this tick")
            return SweepResult(skipped=True)
        try:
            return self._run()
        except Exception as e:
            logger.exception("Error deactivating users with expired sessions: %s", e)
            return SweepResult(error=str(e))
        finally:
            self._running.release()

    def _run(self) -> SweepResult:
        sessions = self.store.all()
        if not sessions or not isinstance(sessions, Mapping):
            logger.warning("No sessions found or invalid sessions data")
            return SweepResult()

        now = self.clock()
        user_ids, expired, malformed = collect_expired_user_ids(sessions, now)
        result = SweepResult(
            sessions_seen=len(sessions),
            expired_sessions=expired,
            user_ids=user_ids,
            malformed=malformed,
        )

        if user_ids:
            self.deactivate_users(user_ids)
            logger.info("Marked %d user(s) as inactive due to expired sessions", len(user_ids))

        if self.after_sweep is not None:
            self.after_sweep(now)
        return result


def make_user_deactivator(app: Flask) -> Callable[[Sequence[Any]], int]:
    def deactivate(user_ids: Sequence[Any]) -> int:
        with session_scope(app) as s:
            result = s.execute(
                update(User)
                .where(User.id.in_(list(user_ids)))
                .values(status="inactive")
                .execution_options(synchronize_session=False)
            )
            return result.rowcount or 0

    return deactivate


class SweepScheduler:
    """
    Runs a sweep every `interval_seconds` on a daemon thread. The next wait only
    starts after the previous sweep has returned, so runs never overlap.
    """

    def __init__(self, sweep: SessionExpirySweep, interval_seconds: float, *, name: str = "session-sweep"):
        self.sweep = sweep
        self.interval_seconds = interval_seconds
        self.name = name
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name=self.name, daemon=True)
        self._thread.start()
        logger.info("Session sweep scheduled every %ss", self.interval_seconds)

    def stop(self, timeout: float | None = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _loop(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            self.sweep.run_once()


def init_sweep(app: Flask) -> SweepScheduler:
    """
    Wire the sweep to the app's session store and database. The expired-row cleaner
    runs after each sweep so the sweep always sees a row before it is removed.
    """
    store = app.session_interface.store  # type: ignore[attr-defined]
    after_sweep = store.clear_expired if app.config.get("SESSION_CLEAR_EXPIRED") else None
    sweep = SessionExpirySweep(store, make_user_deactivator(app), after_sweep=after_sweep)
    scheduler = SweepScheduler(sweep, app.config["SESSION_SWEEP_INTERVAL_SECONDS"])
    app.extensions["session_sweep"] = sweep
    app.extensions["session_sweep_scheduler"] = scheduler
    return scheduler
