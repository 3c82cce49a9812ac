# storefront/services/payment_orchestrator.py
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, Mapping
from uuid import uuid4

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.data.models.payment import PaymentModel
from storefront.domain.enums import PaymentMethod, PaymentStatus
from storefront.domain.errors import (
    GatewayUnavailableError,
    InternalError,
    NotFoundError,
    StorefrontError,
    ValidationError,
)
from storefront.domain.pricing import discounted_price, to_minor_units, to_money
from storefront.repos.payment_repo import PaymentRepo
from storefront.services.notification_service import NotificationService
from storefront.services.payment_gateway import GatewayError, PaymentGateway, get_gateway
from storefront.services.product_client import ProductClient, ProductInfo
from storefront.services.side_effects import fire_and_forget
from storefront.services.stock_guard import StockGuard
from storefront.services.ticket_issuer import TicketIssuer
from storefront.services.user_cart_store import UserCartStore
from storefront.utils.settings import PAYMENT_CURRENCY
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class PaymentOrchestrator:
    """
    Tworzenie płatności z koszyka i maszyna stanów Payment.

    pending -> paid | failed, paid -> refunded (RefundEngine).
    Każde przejście to warunkowy UPDATE ... WHERE status = 'pending',
    więc powtórzony webhook albo retry klienta niczego nie psuje.
    """

    def __init__(
        self,
        db: Session,
        product_client: ProductClient,
        gateway: PaymentGateway | None = None,
        notifier: NotificationService | None = None,
        ticket_issuer: TicketIssuer | None = None,
        currency: str | None = None,
    ):
        self.repo = PaymentRepo(db)
        self.cart_store = UserCartStore(db)
        self.product_client = product_client
        self.stock_guard = StockGuard(product_client)
        self.gateway = gateway or get_gateway()
        self.notifier = notifier or NotificationService()
        self.ticket_issuer = ticket_issuer or TicketIssuer()
        self.currency = currency or PAYMENT_CURRENCY

    #commands
    def create_from_cart(self, user_id: int, cart_id: int, method: str) -> PaymentModel:
        """
        1. koszyk + StockGuard
        2. idempotencja: istniejąca płatność pending dla tego koszyka wraca bez zmian
        3. snapshot i kwota z aktualnego katalogu, intent w bramce, zapis pending
        Błąd bramki = nic nie zapisane.
        """
        try:
            payment_method = PaymentMethod(method).value
        except ValueError:
            raise ValidationError(f"Unsupported payment method '{method}'")

        try:
            cart = self.cart_store.get_cart(user_id, cart_id)
            items = self.cart_store.cart_items(cart.id)
            if not items:
                raise ValidationError("Cannot pay for an empty cart")

            products = self.product_client.get_products(items.keys())
            self.stock_guard.assert_stock_available(items, products)

            existing = self.repo.find_pending_for_cart(user_id, cart_id)
            if existing:
                logger.info(
                    f"Reusing pending payment {existing.uuid} for user {user_id}, cart {cart_id}"
                )
                return existing

            snapshot = self._build_snapshot(cart_id, items, products)
            amount = self._calculate_amount(snapshot)
            payment_uuid = str(uuid4())

            try:
                intent = self.gateway.create_intent(
                    amount=to_minor_units(amount),
                    currency=self.currency,
                    metadata={
                        "payment_uuid": payment_uuid,
                        "cart_id": str(cart_id),
                        "user_id": str(user_id),
                    },
                    idempotency_key=f"intent-{payment_uuid}",
                )
            except GatewayError as e:
                self.repo.rollback()
                logger.error(f"Payment intent creation failed for cart {cart_id}: {e}")
                raise GatewayUnavailableError(
                    "Payment gateway error, please try again later"
                ) from e

            payment = PaymentModel(
                uuid=payment_uuid,
                user_id=user_id,
                cart_id=cart_id,
                amount=amount,
                refunded_amount=Decimal("0.00"),
                status=PaymentStatus.PENDING.value,
                payment_method=payment_method,
                transaction_id=intent.id,
                client_secret=intent.client_secret,
                cart_snapshot=snapshot,
            )
            return self._persist_new_payment(payment)

        except StorefrontError:
            raise
        except Exception as e:
            self.repo.rollback()
            logger.exception(f"Unexpected payment error for user {user_id}, cart {cart_id}")
            raise InternalError("Internal payment error") from e

    def _persist_new_payment(self, payment: PaymentModel) -> PaymentModel:
        try:
            self.repo.add(payment)
            self.repo.commit()
        except IntegrityError as e:
            # równoległy checkout tego samego koszyka wygrał wyścig (unikalny indeks pending)
            self.repo.rollback()
            winner = self.repo.find_pending_for_cart(payment.user_id, payment.cart_id)
            if winner:
                logger.warning(
                    f"Concurrent checkout for cart {payment.cart_id}: gateway intent "
                    f"{payment.transaction_id} is orphaned and needs reconciliation, "
                    f"returning payment {winner.uuid}"
                )
                return winner
            logger.error(
                f"Payment {payment.uuid} not stored although gateway intent "
                f"{payment.transaction_id} exists, needs reconciliation: {e}"
            )
            raise InternalError("Internal payment error") from e
        except SQLAlchemyError as e:
            self.repo.rollback()
            logger.error(
                f"Payment {payment.uuid} not stored although gateway intent "
                f"{payment.transaction_id} exists, needs reconciliation: {e}"
            )
            raise InternalError("Internal payment error") from e

        logger.info(
            f"Payment {payment.uuid} created for cart {payment.cart_id}: "
            f"amount={payment.amount}, intent={payment.transaction_id}"
        )
        return payment

    def _build_snapshot(
        self,
        cart_id: int,
        items: Mapping[int, int],
        products: Mapping[int, ProductInfo],
    ) -> Dict[str, Any]:
        lines = []
        for product_id, quantity in items.items():
            product = products.get(product_id)
            if product is None:
                raise NotFoundError(f"Product {product_id} not found")
            lines.append(
                {
                    "product_id": product_id,
                    "product_name": product.name,
                    "quantity": quantity,
                    "unit_price": float(product.price),
                    "discount_rate": float(product.sale_rate),
                    "discounted_price": float(discounted_price(product.price, product.sale_rate)),
                }
            )
        return {"cart_id": cart_id, "items": lines}

    @staticmethod
    def _calculate_amount(snapshot: Dict[str, Any]) -> Decimal:
        return to_money(
            sum(
                (Decimal(str(line["discounted_price"])) * line["quantity"] for line in snapshot["items"]),
                Decimal("0.00"),
            )
        )

    def mark_as_paid(self, payment: PaymentModel) -> bool:
        """True tylko gdy to wywołanie przestawiło pending -> paid."""
        if payment.status != PaymentStatus.PENDING.value:
            return False

        rowcount = self._transition(
            payment,
            PaymentStatus.PENDING.value,
            {"status": PaymentStatus.PAID.value, "paid_at": datetime.now(timezone.utc)},
        )
        if rowcount == 0:
            logger.info(f"Payment {payment.uuid} already left pending, paid transition skipped")
            return False

        logger.info(f"Payment {payment.uuid} marked as paid")

        # po commicie, bez czekania na wynik
        fire_and_forget(
            "issue tickets",
            self.ticket_issuer.issue_for_payment,
            payment.uuid,
            payment.user_id,
            payment.cart_snapshot,
        )
        fire_and_forget(
            "payment notification",
            self.notifier.payment_succeeded,
            payment.user_id,
            payment.uuid,
        )
        return True

    def mark_as_paid_by_uuid(self, uuid: str) -> bool:
        payment = self.repo.get_by_uuid(uuid)
        if not payment:
            logger.warning(f"Paid transition requested for unknown payment {uuid}")
            return False
        return self.mark_as_paid(payment)

    def mark_as_paid_by_reference(self, transaction_id: str) -> bool:
        payment = self.repo.get_by_reference(transaction_id)
        if not payment:
            logger.warning(f"Paid transition requested for unknown transaction {transaction_id}")
            return False
        return self.mark_as_paid(payment)

    def mark_as_failed(self, payment: PaymentModel) -> bool:
        if payment.status != PaymentStatus.PENDING.value:
            return False

        rowcount = self._transition(
            payment,
            PaymentStatus.PENDING.value,
            {"status": PaymentStatus.FAILED.value},
        )
        if rowcount:
            logger.info(f"Payment {payment.uuid} marked as failed")
        return bool(rowcount)

    def mark_as_failed_by_uuid(self, uuid: str) -> bool:
        payment = self.repo.get_by_uuid(uuid)
        if not payment:
            logger.info(f"Failed transition requested for unknown payment {uuid}, ignoring")
            return False
        return self.mark_as_failed(payment)

    def mark_as_failed_by_reference(self, transaction_id: str) -> bool:
        payment = self.repo.get_by_reference(transaction_id)
        if not payment:
            logger.info(f"Failed transition requested for unknown transaction {transaction_id}, ignoring")
            return False
        return self.mark_as_failed(payment)

    def _transition(self, payment: PaymentModel, expected: str, new_data: Dict[str, Any]) -> int:
        try:
            rowcount = self.repo.transition(payment.id, expected, new_data)
            self.repo.commit()
        except SQLAlchemyError as e:
            self.repo.rollback()
            logger.error(f"Error updating payment {payment.uuid} to {new_data.get('status')}: {e}")
            raise
        self.repo.refresh(payment)
        return rowcount

    #query
    def find_by_uuid(self, uuid: str) -> PaymentModel:
        payment = self.repo.get_by_uuid(uuid)
        if not payment:
            raise NotFoundError(f"Payment {uuid} not found")
        return payment

    def find_by_uuid_for_user(self, uuid: str, user_id: int) -> PaymentModel:
        payment = self.repo.get_by_uuid(uuid)
        if not payment or payment.user_id != user_id:
            raise NotFoundError(f"Payment {uuid} not found")
        return payment

    def find_by_reference(self, transaction_id: str) -> PaymentModel | None:
        return self.repo.get_by_reference(transaction_id)

    def list_payments(
        self,
        filters: Dict[str, Any],
        sort_by: str = "created_at",
        sort_order: str = "desc",
        page: int = 1,
        per_page: int = 15,
    ) -> Dict[str, Any]:
        items, total = self.repo.paginate(filters, sort_by, sort_order, page, per_page)
        return {"items": items, "total": total, "page": page, "per_page": per_page}
