"""
Sync failure alerts
"""
import requests

from app.core.alerts import AlertLevel, AlertManager, send_sync_error_alert


class RecordingManager(AlertManager):
    def __init__(self):
        super().__init__(enabled=True, webhook_url="")
        self.sent = []

    def send_alert(self, title, message, level=AlertLevel.ERROR, context=None, channels=None):
        self.sent.append({"title": title, "message": message, "level": level, "context": context})
        return ["log"]


def test_log_channel_always_enabled():
    manager = AlertManager(enabled=True, webhook_url="")
    assert manager.send_alert("title", "message") == ["log"]


def test_disabled_manager_sends_nothing():
    assert AlertManager(enabled=False).send_alert("title", "message") == []


def test_webhook_failure_keeps_other_channels(monkeypatch):
    """Test: A webhook that cannot be reached does not stop the log alert"""
    def unreachable(*args, **kwargs):
        raise requests.ConnectionError("connection refused")

    monkeypatch.setattr(requests, "post", unreachable)
    manager = AlertManager(enabled=True, webhook_url="https://hooks.example.com/alerts")

    assert manager.send_alert("title", "message") == ["log"]


def test_webhook_receives_alert(monkeypatch):
    posted = []

    class Response:
        def raise_for_status(self):
            pass

    def post(url, json=None, timeout=None):
        posted.append((url, json))
        return Response()

    monkeypatch.setattr(requests, "post", post)
    manager = AlertManager(enabled=True, webhook_url="https://hooks.example.com/alerts")

    assert manager.send_alert("Sync failed", "boom", level=AlertLevel.CRITICAL) == ["log", "webhook"]
    assert posted[0][1]["level"] == AlertLevel.CRITICAL


def test_recoverable_failures_are_warnings():
    manager = RecordingManager()
    send_sync_error_alert("user-1", "shopify", "bulk_export", "please retry",
                          error_code="BULK_OPERATION_TIMEOUT", recoverable=True, manager=manager)
    send_sync_error_alert("user-1", "shopify", "bulk_export", "rejected", manager=manager)

    assert [alert["level"] for alert in manager.sent] == [AlertLevel.WARNING, AlertLevel.ERROR]
    assert manager.sent[0]["context"]["error_code"] == "BULK_OPERATION_TIMEOUT"
