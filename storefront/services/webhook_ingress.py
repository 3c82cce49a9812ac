# storefront/services/webhook_ingress.py
"""
Webhooki Stripe.

Podpis (nagłówek Stripe-Signature) weryfikuje SDK Stripe (WebhookSignature).
400 tylko dla złego podpisu albo payloadu; każdy wynik biznesowy to 200,
bo Stripe ponawia wszystko, co nie jest 200.
"""
import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

import stripe

from storefront.services.payment_orchestrator import PaymentOrchestrator
from storefront.services.refund_engine import RefundEngine
from storefront.utils.settings import STRIPE_WEBHOOK_SECRET, WEBHOOK_TOLERANCE_SECONDS
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

SUCCEEDED_EVENTS = ("payment_intent.succeeded", "checkout.session.completed")
FAILED_EVENTS = ("payment_intent.payment_failed",)
REFUNDED_EVENTS = ("charge.refunded",)

INVALID_SIGNATURE = {"error": "Invalid signature"}
INVALID_PAYLOAD = {"error": "Invalid payload"}


class InvalidPayloadError(Exception):
    pass


@dataclass(frozen=True)
class WebhookResponse:
    status_code: int
    body: Optional[Dict[str, Any]] = None


def parse_event(payload: str) -> Dict[str, Any]:
    """Zdarzenie jako zwykły dict; data.object sprawdzają dopiero handlery, które go czytają."""
    try:
        event = json.loads(payload)
    except ValueError as e:
        raise InvalidPayloadError(f"Body is not JSON: {e}")

    if not isinstance(event, dict) or not isinstance(event.get("type"), str):
        raise InvalidPayloadError("Event has no type")
    return event


def event_object(event: Dict[str, Any]) -> Dict[str, Any]:
    data = event.get("data")
    obj = data.get("object") if isinstance(data, dict) else None
    if not isinstance(obj, dict):
        raise InvalidPayloadError(f"Event {event['type']} has no data.object")
    return obj


class WebhookIngress:
    def __init__(
        self,
        orchestrator: PaymentOrchestrator,
        refund_engine: RefundEngine,
        secret: str | None = None,
        tolerance: int | None = None,
    ):
        self.orchestrator = orchestrator
        self.refund_engine = refund_engine
        self.secret = STRIPE_WEBHOOK_SECRET if secret is None else secret
        self.tolerance = tolerance if tolerance is not None else WEBHOOK_TOLERANCE_SECONDS

    def handle(self, raw_body: bytes, signature_header: Optional[str]) -> WebhookResponse:
        if not self.secret:
            logger.warning("Webhook rejected: STRIPE_WEBHOOK_SECRET is not configured")
            return WebhookResponse(400, INVALID_SIGNATURE)

        try:
            payload = raw_body.decode("utf-8")
        except UnicodeDecodeError as e:
            logger.warning(f"Webhook with invalid payload: {e}")
            return WebhookResponse(400, INVALID_PAYLOAD)

        # ta sama weryfikacja co w stripe.Webhook.construct_event, bez budowania
        # StripeObject (construct_event wywraca się na JSON-ie, który nie jest obiektem)
        try:
            stripe.WebhookSignature.verify_header(
                payload, signature_header, self.secret, self.tolerance
            )
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Webhook with invalid signature: {e}")
            return WebhookResponse(400, INVALID_SIGNATURE)

        try:
            event = parse_event(payload)
            event_type = event["type"]

            if event_type in SUCCEEDED_EVENTS:
                self._payment_succeeded(event_type, event_object(event))
            elif event_type in FAILED_EVENTS:
                self._payment_failed(event_object(event))
            elif event_type in REFUNDED_EVENTS:
                self._payment_refunded(event_object(event))
            else:
                logger.info(f"Unhandled webhook event type: {event_type}")
        except InvalidPayloadError as e:
            logger.warning(f"Webhook with invalid payload: {e}")
            return WebhookResponse(400, INVALID_PAYLOAD)

        return WebhookResponse(200)

    def _payment_succeeded(self, event_type: str, obj: Dict[str, Any]) -> None:
        metadata = obj.get("metadata") or {}
        payment_uuid = metadata.get("payment_uuid") if isinstance(metadata, dict) else None

        if not isinstance(payment_uuid, str) or not payment_uuid:
            # ponowienie nie doda brakujących metadanych, więc tylko ostrzegamy
            logger.warning(
                f"Webhook received without payment_uuid on event {event_type} (object {obj.get('id')})"
            )
            return

        if self.orchestrator.mark_as_paid_by_uuid(payment_uuid):
            logger.info(f"Webhook {event_type}: payment {payment_uuid} is now paid")
        else:
            logger.info(f"Webhook {event_type}: payment {payment_uuid} unchanged (duplicate or not pending)")

    def _payment_failed(self, obj: Dict[str, Any]) -> None:
        transaction_id = obj.get("id")
        if not isinstance(transaction_id, str):
            logger.warning("Payment failed webhook without intent id")
            return
        self.orchestrator.mark_as_failed_by_reference(transaction_id)

    def _payment_refunded(self, obj: Dict[str, Any]) -> None:
        transaction_id = obj.get("payment_intent")
        amount_refunded = obj.get("amount_refunded")
        if not isinstance(transaction_id, str) or not isinstance(amount_refunded, int):
            logger.warning(f"Refund webhook without payment_intent or amount_refunded (object {obj.get('id')})")
            return
        self.refund_engine.reconcile_gateway_refund(transaction_id, amount_refunded)
