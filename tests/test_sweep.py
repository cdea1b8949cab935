"""
Session expiry sweep: unit tests with an injected store/clock, plus one pass
through the real session table and users table.
"""
import logging
import threading
from datetime import datetime, timedelta, timezone

import pytest

from app.oscaims.db import session_scope
from app.oscaims.models import User
from app.oscaims.sweep import SessionExpirySweep, SweepScheduler, parse_expires

from conftest import get_user

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeStore:
    def __init__(self, sessions):
        self.sessions = sessions
        self.calls = 0

    def all(self):
        self.calls += 1
        if isinstance(self.sessions, Exception):
            raise self.sessions
        return self.sessions


class RecordingDeactivator:
    def __init__(self):
        self.calls = []

    def __call__(self, user_ids):
        self.calls.append(list(user_ids))


def _sess(expires, user_id=None, **extra):
    payload = {"cookie": {"expires": expires, "httpOnly": True}, **extra}
    if user_id is not None:
        payload["user"] = {"id": user_id}
    return payload


def _iso(dt):
    return dt.isoformat().replace("+00:00", "Z")


def _sweep(sessions):
    deactivate = RecordingDeactivator()
    sweep = SessionExpirySweep(FakeStore(sessions), deactivate, clock=lambda: NOW)
    return sweep, deactivate


def test_expired_session_deactivates_user():
    sweep, deactivate = _sweep({"a": _sess(_iso(NOW - timedelta(minutes=1)), user_id=7)})
    result = sweep.run_once()
    assert deactivate.calls == [[7]]
    assert result.user_ids == [7]
    assert result.expired_sessions == 1


def test_future_or_missing_expiry_is_ignored():
    sweep, deactivate = _sweep(
        {
            "future": _sess(_iso(NOW + timedelta(hours=3)), user_id=1),
            "no-expires": {"cookie": {"httpOnly": True}, "user": {"id": 2}},
            "no-cookie": {"user": {"id": 3}},
            "null-expires": _sess(None, user_id=4),
        }
    )
    result = sweep.run_once()
    assert deactivate.calls == []
    assert result.deactivated == 0
    assert result.sessions_seen == 4


def test_expiry_exactly_now_is_not_expired():
    sweep, deactivate = _sweep({"edge": _sess(_iso(NOW), user_id=1)})
    sweep.run_once()
    assert deactivate.calls == []


def test_expired_session_without_user_is_counted_but_not_deactivated():
    sweep, deactivate = _sweep(
        {
            "anon": _sess(_iso(NOW - timedelta(days=1)), views=3),
            "zero-id": _sess(_iso(NOW - timedelta(days=1)), user_id=0),
        }
    )
    result = sweep.run_once()
    assert deactivate.calls == []
    assert result.expired_sessions == 2


@pytest.mark.parametrize("empty", [{}, None])
def test_empty_collection_is_a_noop(empty, caplog):
    caplog.set_level(logging.WARNING)
    after = []
    store = FakeStore(empty)
    deactivate = RecordingDeactivator()
    sweep = SessionExpirySweep(store, deactivate, clock=lambda: NOW, after_sweep=after.append)
    result = sweep.run_once()
    assert deactivate.calls == []
    assert after == []
    assert result.error is None
    assert "No sessions found or invalid sessions data" in caplog.text


def test_duplicate_user_ids_produce_single_update():
    expired = _iso(NOW - timedelta(minutes=10))
    sweep, deactivate = _sweep(
        {
            "a": _sess(expired, user_id=5),
            "b": _sess(expired, user_id=5),
            "c": _sess(expired, user_id=9),
            "d": _sess(expired, user_id=5),
        }
    )
    result = sweep.run_once()
    assert deactivate.calls == [[5, 9]]
    assert result.expired_sessions == 4


@pytest.mark.parametrize("garbage", ["not a mapping", 42, ["a", "b"]])
def test_malformed_store_response_is_logged_not_raised(garbage, caplog):
    caplog.set_level(logging.WARNING)
    sweep, deactivate = _sweep(garbage)
    result = sweep.run_once()
    assert deactivate.calls == []
    assert result.error is None
    assert "invalid sessions data" in caplog.text


def test_malformed_entries_are_skipped():
    sweep, deactivate = _sweep(
        {
            "bad-type": "oops",
            "bad-expires": _sess("next tuesday", user_id=1),
            "bad-cookie": {"cookie": "x", "user": {"id": 2}},
            "good": _sess(_iso(NOW - timedelta(seconds=1)), user_id=3),
        }
    )
    result = sweep.run_once()
    assert deactivate.calls == [[3]]
    assert result.malformed == 2


def test_non_scalar_user_id_does_not_block_batch():
    expired = _iso(NOW - timedelta(minutes=1))
    cleared = []
    deactivate = RecordingDeactivator()
    sweep = SessionExpirySweep(
        FakeStore(
            {
                "dict-id": _sess(expired, user_id={"x": 1}),
                "list-id": _sess(expired, user_id=[1, 2]),
                "bool-id": _sess(expired, user_id=True),
                "good": _sess(expired, user_id=7),
            }
        ),
        deactivate,
        clock=lambda: NOW,
        after_sweep=cleared.append,
    )
    result = sweep.run_once()
    assert result.error is None
    assert deactivate.calls == [[7]]
    assert result.malformed == 3
    assert cleared == [NOW]


def test_store_failure_is_swallowed(caplog):
    caplog.set_level(logging.ERROR)
    sweep, deactivate = _sweep(ConnectionError("mysql went away"))
    result = sweep.run_once()
    assert result.error == "mysql went away"
    assert deactivate.calls == []
    assert "Error deactivating users with expired sessions" in caplog.text


def test_database_failure_is_swallowed():
    def failing(ids):
        raise RuntimeError("deadlock")

    sweep = SessionExpirySweep(
        FakeStore({"a": _sess(_iso(NOW - timedelta(days=1)), user_id=1)}), failing, clock=lambda: NOW
    )
    result = sweep.run_once()
    assert result.error == "deadlock"
    assert not sweep.in_progress


def test_overlapping_run_is_skipped():
    inner = []

    sweep = None

    def reentrant(ids):
        inner.append(sweep.run_once())

    sweep = SessionExpirySweep(
        FakeStore({"a": _sess(_iso(NOW - timedelta(days=1)), user_id=1)}), reentrant, clock=lambda: NOW
    )
    outer = sweep.run_once()
    assert outer.user_ids == [1]
    assert inner[0].skipped is True
    # guard is released afterwards
    assert sweep.run_once().skipped is False


def test_after_sweep_receives_clock_time():
    seen = []
    sweep = SessionExpirySweep(
        FakeStore({"a": _sess(_iso(NOW + timedelta(days=1)), user_id=1)}),
        RecordingDeactivator(),
        clock=lambda: NOW,
        after_sweep=seen.append,
    )
    sweep.run_once()
    assert seen == [NOW]


class TestParseExpires:
    def test_iso_with_z(self):
        assert parse_expires("2026-03-01T12:00:00.000Z") == NOW

    def test_iso_with_offset(self):
        assert parse_expires("2026-03-01T20:00:00+08:00") == NOW

    def test_naive_values_are_utc(self):
        assert parse_expires("2026-03-01T12:00:00") == NOW
        assert parse_expires(datetime(2026, 3, 1, 12, 0)) == NOW

    def test_epoch_seconds_and_millis(self):
        seconds = int(NOW.timestamp())
        assert parse_expires(seconds) == NOW
        assert parse_expires(seconds * 1000) == NOW

    def test_missing(self):
        assert parse_expires(None) is None
        assert parse_expires("") is None

    @pytest.mark.parametrize("bad", ["soon", True, {"a": 1}])
    def test_unparseable(self, bad):
        with pytest.raises(ValueError):
            parse_expires(bad)


def test_scheduler_runs_sweep_and_stops():
    ran = threading.Event()

    class SignallingStore:
        def all(self):
            ran.set()
            return {}

    scheduler = SweepScheduler(SessionExpirySweep(SignallingStore(), RecordingDeactivator()), 0.01)
    scheduler.start()
    try:
        assert ran.wait(2.0)
        assert scheduler.running
    finally:
        scheduler.stop()
    assert not scheduler.running


def test_sweep_against_database(app):
    """Expired session row -> user inactive, expired rows purged, live user untouched."""
    store = app.session_interface.store
    now = datetime.now(timezone.utc)
    with session_scope(app) as s:
        for u in s.query(User).all():
            u.status = "active"
        admin_id = s.query(User.id).filter(User.username == "admin").scalar()
        clerk_id = s.query(User.id).filter(User.username == "clerk").scalar()

    past = now - timedelta(minutes=5)
    future = now + timedelta(hours=5)
    store.set("expired-1", _sess(_iso(past), user_id=clerk_id), past)
    store.set("expired-2", _sess(_iso(past), user_id=clerk_id), past)
    store.set("live", _sess(_iso(future), user_id=admin_id), future)

    result = app.extensions["session_sweep"].run_once()

    assert result.user_ids == [clerk_id]
    assert get_user(app, "clerk").status == "inactive"
    assert get_user(app, "admin").status == "active"
    assert set(store.all()) == {"live"}


def test_login_session_expiry_end_to_end(app, client):
    client.post("/api/user/login", json={"username": "clerk", "password": "clerk-pass"})
    assert get_user(app, "clerk").status == "active"

    sweep = app.extensions["session_sweep"]
    later = datetime.now(timezone.utc) + timedelta(days=2)
    SessionExpirySweep(sweep.store, sweep.deactivate_users, clock=lambda: later).run_once()

    assert get_user(app, "clerk").status == "inactive"
