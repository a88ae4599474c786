import logging

import pytest

from screen_assistant.desktop import notifications, tray
from screen_assistant.utils import install_fault_handlers, setup_logging
from screen_assistant.vision import SystemPermissionProbe


# ==================== Notifications ====================

def test_preview_truncates_long_text():
    assert notifications.preview("short") == "short"
    assert notifications.preview("x" * 100) == "x" * 100
    assert notifications.preview("x" * 150) == "x" * 100 + "..."


def test_notify_analysis_uses_preview(monkeypatch):
    sent = []

    class FakeNotification:
        @staticmethod
        def notify(**kwargs):
            sent.append(kwargs)

    monkeypatch.setattr(notifications, "HAS_PLYER", True)
    monkeypatch.setattr(notifications, "notification", FakeNotification, raising=False)

    assert notifications.notify_analysis("a" * 120) is True
    assert sent[0]["title"] == "AI Analysis Complete"
    assert sent[0]["message"] == "a" * 100 + "..."


def test_notify_backend_failure_is_reported(monkeypatch):
    class BrokenNotification:
        @staticmethod
        def notify(**kwargs):
            raise NotImplementedError("no notification backend")

    monkeypatch.setattr(notifications, "HAS_PLYER", True)
    monkeypatch.setattr(notifications, "notification", BrokenNotification, raising=False)

    assert notifications.notify("title", "body") is False


# ==================== Tray ====================

def test_default_icon():
    icon = tray.create_default_icon(32)
    assert icon.size == (32, 32)
    assert icon.getpixel((16, 16)) == tray.ICON_COLOR
    assert icon.getpixel((0, 0))[3] == 0


def test_load_icon_falls_back_to_default(tmp_path):
    icon = tray.load_icon(str(tmp_path / "missing.png"))
    assert icon.size == (64, 64)


def test_tooltip_reflects_auto_capture():
    assert tray.tooltip(True) == "AI Screen Assistant - Auto-capture ON"
    assert tray.tooltip(False) == "AI Screen Assistant - Auto-capture OFF"


# ==================== Permissions ====================

class FakeQuartz:
    def __init__(self, granted):
        self.granted = granted
        self.requests = 0

    def CGPreflightScreenCaptureAccess(self):
        return self.granted

    def CGRequestScreenCaptureAccess(self):
        self.requests += 1
        return self.granted


def test_permission_granted_without_quartz(monkeypatch):
    from screen_assistant.vision import permissions
    monkeypatch.setattr(permissions, "Quartz", None)

    probe = SystemPermissionProbe()
    assert not probe.applicable
    assert probe.is_granted() is True
    assert probe.request() is True


@pytest.mark.parametrize("granted", [True, False])
def test_permission_uses_quartz(granted):
    quartz = FakeQuartz(granted)
    probe = SystemPermissionProbe(quartz=quartz)

    assert probe.is_granted() is granted
    assert probe.request() is granted
    assert quartz.requests == 1


# ==================== Logging ====================

@pytest.fixture
def restore_logging():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


def test_setup_logging_writes_app_and_error_logs(tmp_path, restore_logging):
    setup_logging(tmp_path, logging.INFO)

    log = logging.getLogger("screen_assistant.test")
    log.info("capture started")
    log.error("capture failed")
    for handler in logging.getLogger().handlers:
        handler.flush()

    app_log = (tmp_path / "app.log").read_text(encoding="utf-8")
    error_log = (tmp_path / "error.log").read_text(encoding="utf-8")
    assert "capture started" in app_log
    assert "capture failed" in app_log
    assert "capture started" not in error_log
    assert "capture failed" in error_log
    assert logging.getLogger("httpx").level == logging.WARNING


def test_fault_handlers_log_instead_of_crashing(monkeypatch, caplog):
    import sys
    import threading

    monkeypatch.setattr(sys, "excepthook", sys.excepthook)
    monkeypatch.setattr(threading, "excepthook", threading.excepthook)
    install_fault_handlers()

    def boom():
        raise RuntimeError("worker exploded")

    with caplog.at_level(logging.ERROR):
        worker = threading.Thread(target=boom)
        worker.start()
        worker.join()

    assert "worker exploded" in caplog.text
