import logging
import sys
import threading

from app.oscaims.logging_config import install_exception_hooks


def _keep_original_hooks(monkeypatch):
    monkeypatch.setattr(sys, "excepthook", sys.excepthook)
    monkeypatch.setattr(threading, "excepthook", threading.excepthook)


def test_thread_exception_is_logged(monkeypatch, caplog):
    _keep_original_hooks(monkeypatch)
    caplog.set_level(logging.ERROR)
    install_exception_hooks()

    def crash():
        raise RuntimeError("worker blew up")

    t = threading.Thread(target=crash, name="crashy-worker")
    t.start()
    t.join()

    records = [r for r in caplog.records if r.getMessage() == "Uncaught exception in thread crashy-worker"]
    assert len(records) == 1
    assert records[0].levelno == logging.ERROR
    assert records[0].exc_info[0] is RuntimeError


def test_process_exception_is_logged_not_raised(monkeypatch, caplog):
    _keep_original_hooks(monkeypatch)
    caplog.set_level(logging.ERROR)
    install_exception_hooks()

    err = ValueError("bad config")
    sys.excepthook(ValueError, err, err.__traceback__)

    records = [r for r in caplog.records if r.getMessage() == "Uncaught exception"]
    assert len(records) == 1
    assert records[0].levelno == logging.CRITICAL
