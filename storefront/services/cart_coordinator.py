# storefront/services/cart_coordinator.py
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, MutableMapping, Optional

from storefront.domain.errors import ValidationError
from storefront.domain.identity import GuestIdentity, Identity, UserIdentity
from storefront.domain.pricing import discounted_price, to_money
from storefront.services.guest_cart_store import GuestCartStore
from storefront.services.product_client import ProductClient
from storefront.services.user_cart_store import UserCartStore
from storefront.utils.settings import GUEST_CART_SESSION_KEY
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class CartView:
    kind: str
    items: Dict[int, int] = field(default_factory=dict)
    cart_id: Optional[int] = None
    guest_id: Optional[str] = None


class CartCoordinator:
    """
    Jedno API koszyka dla gościa i zalogowanego usera.
    Wybór backendu (Redis albo baza) zależy tylko od typu tożsamości.

    Stany magazynowe NIE są sprawdzane przy zmianach koszyka,
    dopiero przy płatności (StockGuard w PaymentOrchestrator).
    """

    def __init__(
        self,
        guest_store: GuestCartStore,
        user_store: UserCartStore,
        product_client: ProductClient,
    ):
        self.guest_store = guest_store
        self.user_store = user_store
        self.product_client = product_client

    #query
    def resolve_cart(self, identity: Identity) -> CartView:
        if isinstance(identity, UserIdentity):
            cart = self.user_store.get_or_create_cart(identity.user_id)
            return CartView(
                kind="user",
                cart_id=cart.id,
                items=self.user_store.cart_items(cart.id),
            )
        if isinstance(identity, GuestIdentity):
            return CartView(
                kind="guest",
                guest_id=identity.guest_id,
                items=self.guest_store.snapshot(identity.guest_id),
            )
        raise TypeError(f"Unsupported identity {identity!r}")

    def view_cart(self, identity: Identity) -> Dict[str, Any]:
        """Koszyk z cenami i informacją o dostępności dla klienta."""
        cart = self.resolve_cart(identity)
        products = self.product_client.get_products(cart.items.keys())

        lines = []
        for product_id, quantity in cart.items.items():
            product = products.get(product_id)
            if product is None:
                continue
            unit_price = discounted_price(product.price, product.sale_rate)
            lines.append(
                {
                    "product_id": product_id,
                    "product_name": product.name,
                    "quantity": quantity,
                    "in_stock": product.available_stock >= quantity,
                    "available_quantity": product.available_stock,
                    "unit_price": unit_price,
                    "total_price": to_money(unit_price * quantity),
                    "original_price": to_money(product.price),
                    "discount_rate": product.sale_rate,
                }
            )

        return {
            "kind": cart.kind,
            "cart_id": cart.cart_id,
            "guest_id": cart.guest_id,
            "items": lines,
            "total": sum((line["total_price"] for line in lines), Decimal("0.00")),
        }

    #commands
    def add_item(self, identity: Identity, product_id: int, quantity: int) -> None:
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than 0")

        if isinstance(identity, UserIdentity):
            self.user_store.add_item(identity.user_id, product_id, quantity)
        else:
            self.guest_store.add(identity.guest_id, product_id, quantity)

    def remove_item(self, identity: Identity, product_id: int, quantity: int | None = None) -> None:
        if quantity is not None and quantity <= 0:
            raise ValidationError("Quantity to remove must be greater than 0")

        if isinstance(identity, UserIdentity):
            self.user_store.remove_item(identity.user_id, product_id, quantity)
        else:
            self.guest_store.remove(identity.guest_id, product_id, quantity)

    def set_quantity(self, identity: Identity, product_id: int, quantity: int) -> None:
        """Ustawia ilość na zadaną wartość; 0 usuwa pozycje."""
        if quantity < 0:
            raise ValidationError("Quantity cannot be negative")

        if quantity == 0:
            self.remove_item(identity, product_id)
            return

        current = self.resolve_cart(identity).items.get(product_id, 0)
        delta = quantity - current

        if delta > 0:
            self.add_item(identity, product_id, delta)
        elif delta < 0:
            self.remove_item(identity, product_id, -delta)

    def clear(self, identity: Identity) -> None:
        if isinstance(identity, UserIdentity):
            self.user_store.clear(identity.user_id)
        elif not self.guest_store.clear(identity.guest_id):
            logger.warning(f"Guest cart {identity.guest_id} could not be cleared")

    def merge_guest_into_user(
        self,
        guest_id: str,
        user_id: int,
        session: MutableMapping[str, str] | None = None,
    ) -> int:
        """
        Przenosi koszyk gościa do koszyka usera (po logowaniu/weryfikacji).
        Ilości są sumowane, nie nadpisywane. Błąd bazy leci dalej i koszyk
        gościa zostaje nietknięty; błąd usunięcia klucza w Redisie jest tylko
        ostrzeżeniem, bo po wyczyszczeniu sesji klucz i tak nie będzie używany.
        """
        items = self.guest_store.snapshot(guest_id)

        for product_id, quantity in items.items():
            self.user_store.add_item(user_id, product_id, quantity)

        if not self.guest_store.clear(guest_id):
            logger.warning(
                f"Failed to delete guest cart {guest_id} from Redis after merge into user {user_id}"
            )

        if session is not None:
            session.pop(GUEST_CART_SESSION_KEY, None)

        logger.info(f"Merged {len(items)} guest cart lines from {guest_id} into user {user_id}")
        return len(items)
