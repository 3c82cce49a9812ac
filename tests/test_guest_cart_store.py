from unittest.mock import MagicMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from storefront.domain.errors import ValidationError
from storefront.services.guest_cart_store import GuestCartStore

GUEST_ID = "0b9e7c62-3f5e-4c1a-9d43-2f5d8a1c7e10"
KEY = f"cart:guest:{GUEST_ID}"


def test_add_increments_and_refreshes_ttl(guest_store, redis_client):
    guest_store.add(GUEST_ID, 7, 2)
    guest_store.add(GUEST_ID, 7, 1)
    guest_store.add(GUEST_ID, 1, 4)

    assert guest_store.snapshot(GUEST_ID) == {7: 3, 1: 4}
    assert redis_client.ttls[KEY] == 3600


def test_add_rejects_non_positive_quantity(guest_store):
    with pytest.raises(ValidationError):
        guest_store.add(GUEST_ID, 7, 0)


def test_partial_remove_decrements(guest_store):
    guest_store.add(GUEST_ID, 7, 3)
    guest_store.remove(GUEST_ID, 7, 1)

    assert guest_store.snapshot(GUEST_ID) == {7: 2}


def test_remove_at_or_below_zero_deletes_line(guest_store, redis_client):
    guest_store.add(GUEST_ID, 7, 2)
    guest_store.add(GUEST_ID, 1, 1)
    guest_store.remove(GUEST_ID, 7, 5)

    assert guest_store.snapshot(GUEST_ID) == {1: 1}
    assert "7" not in redis_client.hashes[KEY]


def test_remove_without_quantity_drops_line(guest_store):
    guest_store.add(GUEST_ID, 7, 2)
    guest_store.remove(GUEST_ID, 7)

    assert guest_store.snapshot(GUEST_ID) == {}


def test_clear_deletes_key(guest_store, redis_client):
    guest_store.add(GUEST_ID, 7, 2)

    assert guest_store.clear(GUEST_ID) is True
    assert redis_client.exists(KEY) == 0


def test_snapshot_skips_malformed_fields(guest_store, redis_client):
    redis_client.hashes[KEY] = {"7": "2", "abc": "1", "3": "x", "4": "0"}

    assert guest_store.snapshot(GUEST_ID) == {7: 2}


def test_redis_failures_are_swallowed():
    client = MagicMock()
    error = RedisConnectionError("redis down")
    client.hincrby.side_effect = error
    client.hget.side_effect = error
    client.hdel.side_effect = error
    client.hgetall.side_effect = error
    client.delete.side_effect = error
    store = GuestCartStore(client=client, ttl=60)

    store.add(GUEST_ID, 7, 1)
    store.remove(GUEST_ID, 7)
    store.remove(GUEST_ID, 7, 1)

    assert store.snapshot(GUEST_ID) == {}
    assert store.clear(GUEST_ID) is False
    # odczyty są ponawiane, inkrementy nie
    assert client.hgetall.call_count == 3
    assert client.hincrby.call_count == 1
