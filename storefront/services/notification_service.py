# storefront/services/notification_service.py
from storefront.celery_worker import celery_app
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class NotificationService:
    """Hands the order summary to the Celery worker after checkout commits."""

    @staticmethod
    def send_order_notification(order: dict):
        send_order_notification_task.delay(order)


@celery_app.task(name="storefront.services.notification_service.send_order_notification_task")
def send_order_notification_task(order: dict):
    """
    Delivery itself (email, SMS, push) belongs to the notification
    collaborator; here the summary is only logged.
    """
    owner = order.get("user_id") or order.get("session_id")
    logger.info(
        f"[NOTIFICATION] {owner}: order {order.get('order_number')} "
        f"placed, total {order.get('grand_total')} {order.get('currency')}"
    )
    return {"order_id": order.get("order_id"), "status": "sent"}
