# storefront/services/ticket_issuer.py
from storefront.celery_worker import celery_app
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class TicketIssuer:
    """Zleca wygenerowanie biletów dla opłaconej płatności (bez czekania)."""

    @staticmethod
    def issue_for_payment(payment_uuid: str, user_id: int, cart_snapshot: dict):
        issue_tickets_task.delay(payment_uuid, user_id, cart_snapshot)


@celery_app.task(name="storefront.services.ticket_issuer.issue_tickets_task")
def issue_tickets_task(payment_uuid: str, user_id: int, cart_snapshot: dict):
    # PDF/QR generuje zewnętrzny serwis, tu tylko liczymy ile biletów zlecić
    lines = cart_snapshot.get("items", [])
    count = sum(int(line.get("quantity", 0)) for line in lines)
    logger.info(f"[TICKETS] Issuing {count} tickets for payment {payment_uuid} (user {user_id})")

    return {"payment_uuid": payment_uuid, "tickets": count, "status": "queued"}
