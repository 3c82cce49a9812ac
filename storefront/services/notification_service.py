# storefront/services/notification_service.py
from decimal import Decimal

from storefront.celery_worker import celery_app
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class NotificationService:
    """
    Powiadomienia po płatności i zwrocie.
    Używa Celery do asynchronicznego przetwarzania, nic tu nie czeka na wynik.
    """

    @staticmethod
    def payment_succeeded(user_id: int, payment_uuid: str):
        send_payment_notification_task.delay(user_id, payment_uuid, "payment_succeeded", None)

    @staticmethod
    def payment_refunded(user_id: int, payment_uuid: str, amount: Decimal):
        send_payment_notification_task.delay(user_id, payment_uuid, "payment_refunded", str(amount))


@celery_app.task(name="storefront.services.notification_service.send_payment_notification_task")
def send_payment_notification_task(user_id: int, payment_uuid: str, kind: str, amount: str | None):
    """
    Celery task - wysyłka maila jest poza tym serwisem.
    Tutaj tylko logujemy i zwracamy co poszło.
    """
    logger.info(f"[NOTIFICATION] User {user_id}: {kind} for payment {payment_uuid} (amount={amount})")

    return {"user_id": user_id, "payment_uuid": payment_uuid, "kind": kind, "status": "sent"}
