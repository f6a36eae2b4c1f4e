from storefront.services import notification_service
from storefront.services.notification_service import (
    NotificationService,
    notify_safely,
    send_order_notification_task,
)


class _BrokenNotifier:
    def send_order_notification(self, user_id, order_id, status):
        raise ConnectionError("broker down")


def test_task_body_reports_delivery():
    result = send_order_notification_task.run(7, 42, "paid")
    assert result == {"user_id": 7, "order_id": 42, "status": "paid", "sent": True}


def test_service_enqueues_task(monkeypatch):
    queued = []
    monkeypatch.setattr(notification_service.send_order_notification_task, "delay", lambda *args: queued.append(args))

    NotificationService.send_order_notification(7, 42, "shipped")

    assert queued == [(7, 42, "shipped")]


def test_notify_safely_swallows_broker_failures(caplog):
    notify_safely(_BrokenNotifier(), 7, 42, "paid")
    assert "Failed to enqueue notification for order 42" in caplog.text
