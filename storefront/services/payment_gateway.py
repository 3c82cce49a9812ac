# storefront/services/payment_gateway.py
"""
Bramka płatności: interfejs + dwie implementacje.

- StripePaymentGateway: SDK Stripe (PaymentIntent, Refund) z idempotency_key
- FakePaymentGateway: dev/testy, bez żadnych wywołań sieciowych

get_gateway() / set_gateway() pozwalają podmienić implementację w testach.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List
from uuid import uuid4

import stripe

from storefront.utils.retry import gateway_retry
from storefront.utils.settings import PAYMENT_GATEWAY, STRIPE_SECRET_KEY
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class GatewayError(Exception):
    """Bramka odrzuciła żądanie albo była nieosiągalna."""


@dataclass(frozen=True)
class PaymentIntent:
    id: str
    client_secret: str | None = None
    status: str | None = None


@dataclass(frozen=True)
class GatewayRefund:
    id: str
    status: str | None = None


class PaymentGateway(ABC):
    @abstractmethod
    def create_intent(
        self,
        amount: int,
        currency: str,
        metadata: Dict[str, str],
        idempotency_key: str,
    ) -> PaymentIntent:
        """Tworzy payment intent; amount w jednostkach minimalnych (centy)."""
        ...

    @abstractmethod
    def create_refund(
        self,
        transaction_id: str,
        amount: int,
        idempotency_key: str,
    ) -> GatewayRefund:
        """Zwrot (częściowy lub pełny) dla wcześniejszego intentu."""
        ...


class StripePaymentGateway(PaymentGateway):
    def __init__(self, api_key: str | None = None):
        self.api_key = api_key if api_key is not None else STRIPE_SECRET_KEY

    # ten sam idempotency_key przy ponowieniu = brak podwójnego obciążenia
    @gateway_retry()
    def _create_intent(self, amount, currency, metadata, idempotency_key):
        return stripe.PaymentIntent.create(
            amount=amount,
            currency=currency,
            metadata={key: str(value) for key, value in metadata.items()},
            payment_method_types=["card"],
            idempotency_key=idempotency_key,
            api_key=self.api_key,
        )

    @gateway_retry()
    def _create_refund(self, transaction_id, amount, idempotency_key):
        return stripe.Refund.create(
            payment_intent=transaction_id,
            amount=amount,
            idempotency_key=idempotency_key,
            api_key=self.api_key,
        )

    def create_intent(self, amount, currency, metadata, idempotency_key) -> PaymentIntent:
        logger.info(f"Stripe PaymentIntent.create amount={amount} {currency} key={idempotency_key}")
        try:
            intent = self._create_intent(amount, currency, metadata, idempotency_key)
        except stripe.StripeError as e:
            logger.error(f"Stripe error creating intent: {e}")
            raise GatewayError(f"Stripe rejected payment intent: {e}") from e

        return PaymentIntent(
            id=intent.id,
            client_secret=getattr(intent, "client_secret", None),
            status=getattr(intent, "status", None),
        )

    def create_refund(self, transaction_id, amount, idempotency_key) -> GatewayRefund:
        logger.info(f"Stripe Refund.create {transaction_id} amount={amount} key={idempotency_key}")
        try:
            refund = self._create_refund(transaction_id, amount, idempotency_key)
        except stripe.StripeError as e:
            logger.error(f"Stripe error refunding {transaction_id}: {e}")
            raise GatewayError(f"Stripe rejected refund: {e}") from e

        return GatewayRefund(id=refund.id, status=getattr(refund, "status", None))


class FakePaymentGateway(PaymentGateway):
    """Konfigurowalna bramka do dev i testów."""

    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Gateway unavailable"
        self.calls: List[dict] = []

    def configure(self, should_succeed: bool, failure_reason: str = "Gateway unavailable") -> None:
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def create_intent(self, amount, currency, metadata, idempotency_key) -> PaymentIntent:
        self.calls.append(
            {
                "method": "create_intent",
                "amount": amount,
                "currency": currency,
                "metadata": dict(metadata),
                "idempotency_key": idempotency_key,
            }
        )
        if not self.should_succeed:
            raise GatewayError(self.failure_reason)

        intent_id = f"pi_fake_{uuid4().hex[:16]}"
        return PaymentIntent(
            id=intent_id,
            client_secret=f"{intent_id}_secret_{uuid4().hex[:8]}",
            status="requires_payment_method",
        )

    def create_refund(self, transaction_id, amount, idempotency_key) -> GatewayRefund:
        self.calls.append(
            {
                "method": "create_refund",
                "transaction_id": transaction_id,
                "amount": amount,
                "idempotency_key": idempotency_key,
            }
        )
        if not self.should_succeed:
            raise GatewayError(self.failure_reason)

        return GatewayRefund(id=f"re_fake_{uuid4().hex[:16]}", status="succeeded")

    def calls_to(self, method: str) -> List[dict]:
        return [c for c in self.calls if c["method"] == method]


_current_gateway: PaymentGateway | None = None


def get_gateway() -> PaymentGateway:
    global _current_gateway
    if _current_gateway is None:
        _current_gateway = StripePaymentGateway() if PAYMENT_GATEWAY == "stripe" else FakePaymentGateway()
    return _current_gateway


def set_gateway(gateway: PaymentGateway) -> None:
    global _current_gateway
    _current_gateway = gateway


def reset_gateway() -> None:
    global _current_gateway
    _current_gateway = None
