# storefront/services/user_cart_store.py
from typing import Dict

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from storefront.data.models.cart import CartModel
from storefront.data.models.cart_item import CartItemModel
from storefront.domain.errors import NotFoundError, ValidationError
from storefront.repos.cart_repo import CartRepo
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class UserCartStore:
    """
    Trwały koszyk zalogowanego usera (jeden koszyk na usera).
    Każda zmiana to jedna transakcja; istniejący wiersz jest czytany
    FOR UPDATE, więc read-increment-write nie gubi równoległych zmian.
    Błędy bazy są logowane i rzucane dalej, nic nie jest połykane.
    """

    def __init__(self, db: Session):
        self.repo = CartRepo(db)

    #query
    def get_or_create_cart(self, user_id: int) -> CartModel:
        cart = self.repo.get_cart_by_user(user_id)
        if cart:
            return cart

        try:
            cart = self.repo.create_cart(CartModel(user_id=user_id))
            self.repo.commit()
            logger.info(f"Utworzono koszyk {cart.id} dla użytkownika {user_id}")
            return cart
        except IntegrityError:
            # równoległy request zdążył utworzyć koszyk
            self.repo.rollback()
            cart = self.repo.get_cart_by_user(user_id)
            if cart is None:
                raise
            return cart
        except SQLAlchemyError as e:
            self.repo.rollback()
            logger.error(f"Error creating cart for user {user_id}: {e}")
            raise

    def get_cart(self, user_id: int, cart_id: int) -> CartModel:
        cart = self.repo.get_cart(cart_id)
        # cudzy koszyk traktujemy jak nieistniejący
        if not cart or cart.user_id != user_id:
            raise NotFoundError(f"Cart {cart_id} not found")
        return cart

    def items(self, user_id: int) -> Dict[int, int]:
        cart = self.get_or_create_cart(user_id)
        return {i.product_id: i.quantity for i in self.repo.get_cart_items(cart.id)}

    def cart_items(self, cart_id: int) -> Dict[int, int]:
        return {i.product_id: i.quantity for i in self.repo.get_cart_items(cart_id)}

    #commands
    def add_item(self, user_id: int, product_id: int, quantity: int) -> None:
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than 0")

        cart = self.get_or_create_cart(user_id)
        try:
            self._upsert(cart.id, product_id, quantity)
            self.repo.commit()
        except IntegrityError:
            # ktoś równolegle wstawił ten sam (cart, product), robimy inkrement
            self.repo.rollback()
            try:
                self._upsert(cart.id, product_id, quantity)
                self.repo.commit()
            except SQLAlchemyError as e:
                self.repo.rollback()
                logger.error(
                    f"Error adding item to user cart (user={user_id}, product={product_id}): {e}"
                )
                raise
        except SQLAlchemyError as e:
            self.repo.rollback()
            logger.error(
                f"Error adding item to user cart (user={user_id}, product={product_id}): {e}"
            )
            raise

        logger.info(f"Dodano {quantity} x produkt {product_id} do koszyka {cart.id}")

    def _upsert(self, cart_id: int, product_id: int, quantity: int) -> None:
        existing = self.repo.get_cart_item(cart_id, product_id, for_update=True)
        if existing:
            self.repo.increment_item(existing.id, quantity)
        else:
            self.repo.add_cart_item(
                CartItemModel(cart_id=cart_id, product_id=product_id, quantity=quantity)
            )

    def remove_item(self, user_id: int, product_id: int, quantity: int | None = None) -> None:
        cart = self.get_or_create_cart(user_id)
        try:
            item = self.repo.get_cart_item(cart.id, product_id, for_update=True)
            if not item:
                # brak pozycji to nie błąd
                self.repo.rollback()
                return

            if quantity is None or item.quantity - quantity <= 0:
                self.repo.delete_cart_item(item.id)
            else:
                self.repo.increment_item(item.id, -quantity)

            self.repo.commit()
        except SQLAlchemyError as e:
            self.repo.rollback()
            logger.error(
                f"Error removing item from user cart (user={user_id}, product={product_id}): {e}"
            )
            raise

        logger.info(f"Usunięto produkt {product_id} (ilość={quantity}) z koszyka {cart.id}")

    def clear(self, user_id: int) -> None:
        cart = self.get_or_create_cart(user_id)
        try:
            removed = self.repo.delete_cart_items(cart.id)
            self.repo.commit()
        except SQLAlchemyError as e:
            self.repo.rollback()
            logger.error(f"Error clearing user cart (user={user_id}): {e}")
            raise

        logger.info(f"Wyczyszczono koszyk {cart.id}, usunięto {removed} pozycji")
