#import wszystkich modeli żeby SQLAlchemy je zarejestrował w base metadata

from storefront.data.models.cart import CartModel
from storefront.data.models.cart_item import CartItemModel
from storefront.data.models.payment import PaymentModel

__all__ = ["CartModel", "CartItemModel", "PaymentModel"]
