# storefront/services/notification_service.py
from storefront.celery_worker import celery_app
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class NotificationService:
    """
    Customer notifications, processed asynchronously by Celery.
    """

    @staticmethod
    def send_order_notification(user_id: int, order_id: int, status: str):
        send_order_notification_task.delay(user_id, order_id, status)


@celery_app.task(name="storefront.services.notification_service.send_order_notification_task")
def send_order_notification_task(user_id: int, order_id: int, status: str):
    """
    Celery task, a real deployment would hand this to an email/push provider.
    """
    logger.info(f"[NOTIFICATION] User {user_id}: order {order_id} is now {status}")
    return {"user_id": user_id, "order_id": order_id, "status": status, "sent": True}


def notify_safely(notifier, user_id: int, order_id: int, status: str) -> None:
    # the state change is already committed, a broker outage must not turn it into a 500
    try:
        notifier.send_order_notification(user_id, order_id, status)
    except Exception as e:
        logger.warning(f"Failed to enqueue notification for order {order_id}: {e}")
