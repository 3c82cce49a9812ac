# storefront/services/guest_cart_store.py
from typing import Dict

import redis
from redis.exceptions import RedisError

from storefront.domain.errors import ValidationError
from storefront.utils.retry import redis_retry
from storefront.utils.settings import REDIS_URL, GUEST_CART_TTL_SECONDS
from storefront.utils.logging import get_logger

logger = get_logger(__name__)


class GuestCartStore:
    """
    Koszyk gościa w Redisie: hash cart:guest:{uuid} -> {product_id: quantity}.
    Dane best-effort, błędy Redisa są logowane i połykane.

    HINCRBY jest atomowy, więc dwa równoległe requesty tego samego gościa
    nie gubią sobie nawzajem zmian. Same inkrementy nie są ponawiane
    (ponowienie po zerwanym połączeniu mogłoby dodać ilość drugi raz).
    """

    def __init__(self, client: redis.Redis | None = None, ttl: int | None = None):
        self.redis = client or redis.Redis.from_url(REDIS_URL, decode_responses=True)
        self.ttl = ttl or GUEST_CART_TTL_SECONDS

    @staticmethod
    def key(guest_id: str) -> str:
        return f"cart:guest:{guest_id}"

    @redis_retry()
    def _read_all(self, key: str) -> dict:
        return self.redis.hgetall(key)

    @redis_retry()
    def _read_field(self, key: str, field: str):
        return self.redis.hget(key, field)

    @redis_retry()
    def _delete_key(self, key: str) -> None:
        self.redis.delete(key)

    def add(self, guest_id: str, product_id: int, quantity: int) -> None:
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than 0")

        key = self.key(guest_id)
        try:
            self.redis.hincrby(key, str(product_id), quantity)
            # sliding TTL, każda zmiana przedłuża życie koszyka
            self.redis.expire(key, self.ttl)
        except RedisError as e:
            logger.error(
                f"Error adding item to guest cart in Redis (key={key}, product={product_id}): {e}"
            )

    def remove(self, guest_id: str, product_id: int, quantity: int | None = None) -> None:
        key = self.key(guest_id)
        field = str(product_id)
        try:
            if quantity is None:
                self.redis.hdel(key, field)
            else:
                current = int(self._read_field(key, field) or 0)
                if current - quantity <= 0:
                    self.redis.hdel(key, field)
                else:
                    remaining = self.redis.hincrby(key, field, -quantity)
                    # ktoś inny zdążył odjąć w międzyczasie
                    if remaining <= 0:
                        self.redis.hdel(key, field)
            self.redis.expire(key, self.ttl)
        except RedisError as e:
            logger.warning(
                f"Unable to modify guest cart in Redis (key={key}, product={product_id}): {e}"
            )

    def snapshot(self, guest_id: str) -> Dict[int, int]:
        key = self.key(guest_id)
        try:
            raw = self._read_all(key)
        except RedisError as e:
            logger.warning(f"Could not fetch guest cart from Redis (key={key}): {e}")
            return {}

        items = {}
        for field, value in (raw or {}).items():
            try:
                product_id, quantity = int(field), int(value)
            except (TypeError, ValueError):
                logger.warning(f"Skipping malformed guest cart field {field!r} in {key}")
                continue
            if quantity > 0:
                items[product_id] = quantity
        return items

    def clear(self, guest_id: str) -> bool:
        """Usuwa cały koszyk. False gdy Redis nie odpowiedział."""
        key = self.key(guest_id)
        try:
            self._delete_key(key)
            return True
        except RedisError as e:
            logger.warning(f"Failed to delete guest cart from Redis (key={key}): {e}")
            return False
