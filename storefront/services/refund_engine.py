# storefront/services/refund_engine.py
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.data.models.payment import PaymentModel
from storefront.domain.enums import PaymentStatus
from storefront.domain.errors import (
    ConflictError,
    GatewayUnavailableError,
    NotFoundError,
    StorefrontError,
    ValidationError,
)
from storefront.domain.pricing import from_minor_units, to_minor_units, to_money
from storefront.repos.payment_repo import PaymentRepo
from storefront.services.notification_service import NotificationService
from storefront.services.payment_gateway import GatewayError, PaymentGateway, get_gateway
from storefront.services.side_effects import fire_and_forget
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class RefundEngine:
    """
    Zwroty częściowe i skumulowane dla opłaconej płatności.

    Wiersz płatności jest blokowany (FOR UPDATE) na czas wywołania bramki,
    więc dwa równoległe zwroty nie przekroczą kwoty. refunded_amount zmienia
    się dopiero po sukcesie w bramce.
    """

    def __init__(
        self,
        db: Session,
        gateway: PaymentGateway | None = None,
        notifier: NotificationService | None = None,
    ):
        self.repo = PaymentRepo(db)
        self.gateway = gateway or get_gateway()
        self.notifier = notifier or NotificationService()

    def refund_by_uuid(self, uuid: str, amount) -> PaymentModel:
        return self._refund(lambda: self.repo.get_by_uuid(uuid, for_update=True), uuid, amount)

    def refund_by_reference(self, transaction_id: str, amount) -> PaymentModel:
        return self._refund(
            lambda: self.repo.get_by_reference(transaction_id, for_update=True),
            transaction_id,
            amount,
        )

    def _refund(self, load: Callable[[], PaymentModel | None], reference: str, amount) -> PaymentModel:
        requested = to_money(amount)
        if requested <= 0:
            raise ValidationError("Refund amount must be greater than 0")

        try:
            payment = load()
            if not payment:
                raise NotFoundError(f"Payment {reference} not found")

            if payment.status != PaymentStatus.PAID.value:
                raise ConflictError(
                    f"Payment {payment.uuid} is {payment.status}, only paid payments can be refunded"
                )

            total = to_money(payment.amount)
            already_refunded = to_money(payment.refunded_amount or 0)
            remaining = self.remaining(payment)

            if requested > remaining:
                raise ConflictError(f"You can only refund up to {remaining}.")

            try:
                self.gateway.create_refund(
                    transaction_id=payment.transaction_id,
                    amount=to_minor_units(requested),
                    # ten sam zwrot ponowiony po zerwanym połączeniu trafi w ten sam klucz
                    idempotency_key=(
                        f"refund-{payment.uuid}-{to_minor_units(already_refunded)}-{to_minor_units(requested)}"
                    ),
                )
            except GatewayError as e:
                logger.error(f"Gateway refund failed for payment {payment.uuid} ({requested}): {e}")
                raise GatewayUnavailableError(
                    "Payment gateway error, please try again later."
                ) from e

            new_refunded = already_refunded + requested
            data = {
                "refunded_amount": new_refunded,
                "refunded_at": datetime.now(timezone.utc),
            }
            if new_refunded == total:
                data["status"] = PaymentStatus.REFUNDED.value

            self.repo.transition(payment.id, PaymentStatus.PAID.value, data)
            self.repo.commit()

        except StorefrontError:
            self.repo.rollback()
            raise
        except SQLAlchemyError as e:
            self.repo.rollback()
            logger.error(f"Error applying refund for payment {reference}: {e}")
            raise

        self.repo.refresh(payment)
        logger.info(
            f"Refunded {requested} on payment {payment.uuid}: "
            f"refunded_amount={payment.refunded_amount}, status={payment.status}"
        )

        fire_and_forget(
            "refund notification",
            self.notifier.payment_refunded,
            payment.user_id,
            payment.uuid,
            requested,
        )
        return payment

    def reconcile_gateway_refund(self, transaction_id: str, amount_refunded_minor: int) -> bool:
        """
        Dogania zwroty zrobione poza serwisem (np. z panelu bramki).
        Kwota z bramki to suma wszystkich zwrotów, więc powtórka niczego nie zmienia.
        """
        try:
            payment = self.repo.get_by_reference(transaction_id, for_update=True)
            if not payment:
                self.repo.rollback()
                logger.warning(f"Refund notification for unknown transaction {transaction_id}")
                return False

            if payment.status != PaymentStatus.PAID.value:
                self.repo.rollback()
                return False

            total = to_money(payment.amount)
            reported = min(from_minor_units(amount_refunded_minor), total)
            if reported <= to_money(payment.refunded_amount or 0):
                self.repo.rollback()
                return False

            data = {
                "refunded_amount": reported,
                "refunded_at": datetime.now(timezone.utc),
            }
            if reported == total:
                data["status"] = PaymentStatus.REFUNDED.value

            rowcount = self.repo.transition(payment.id, PaymentStatus.PAID.value, data)
            self.repo.commit()
        except SQLAlchemyError as e:
            self.repo.rollback()
            logger.error(f"Error reconciling refund for transaction {transaction_id}: {e}")
            raise

        logger.info(f"Reconciled gateway refund on {transaction_id}: refunded_amount={reported}")
        return bool(rowcount)

    @staticmethod
    def remaining(payment: PaymentModel) -> Decimal:
        return to_money(payment.amount) - to_money(payment.refunded_amount or 0)
