import hashlib
import hmac
import os
import time

# przed importem storefront.*, settings czytają env przy imporcie
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["PAYMENT_GATEWAY"] = "fake"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test"

from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import storefront.data.models  # noqa: F401
from storefront.api import create_app
from storefront.api.deps import get_coordinator, get_orchestrator, get_product_client, get_refund_engine
from storefront.celery_worker import celery_app
from storefront.data.database import Base, get_db
from storefront.services.cart_coordinator import CartCoordinator
from storefront.services.guest_cart_store import GuestCartStore
from storefront.services.payment_gateway import FakePaymentGateway, reset_gateway, set_gateway
from storefront.services.payment_orchestrator import PaymentOrchestrator
from storefront.services.product_client import ProductClient
from storefront.services.refund_engine import RefundEngine
from storefront.services.user_cart_store import UserCartStore


class InMemoryRedis:
    """Minimalny odpowiednik hashy Redisa używanych przez koszyk gościa."""

    def __init__(self):
        self.hashes = {}
        self.ttls = {}

    def hincrby(self, key, field, amount=1):
        fields = self.hashes.setdefault(key, {})
        fields[field] = str(int(fields.get(field, 0)) + amount)
        return int(fields[field])

    def hget(self, key, field):
        return self.hashes.get(key, {}).get(field)

    def hdel(self, key, *fields):
        current = self.hashes.get(key, {})
        removed = sum(1 for f in fields if current.pop(f, None) is not None)
        if key in self.hashes and not current:
            self.delete(key)
        return removed

    def hgetall(self, key):
        return dict(self.hashes.get(key, {}))

    def expire(self, key, seconds):
        if key not in self.hashes:
            return False
        self.ttls[key] = seconds
        return True

    def delete(self, *keys):
        removed = 0
        for key in keys:
            if self.hashes.pop(key, None) is not None:
                removed += 1
            self.ttls.pop(key, None)
        return removed

    def exists(self, key):
        return int(key in self.hashes)


class FakeProductClient(ProductClient):
    """Katalog w pamięci zamiast product-service."""

    def __init__(self):
        super().__init__(base_url="http://catalog.test")
        self.catalog = {}

    def add(self, product_id, name, price, sale_rate=0, stock=100):
        self.catalog[product_id] = {
            "id": product_id,
            "name": name,
            "price": price,
            "sale_rate": sale_rate,
            "available_stock": stock,
        }

    def fetch_product(self, product_id):
        product = self.catalog.get(product_id)
        return dict(product) if product else None


@pytest.fixture(scope="session", autouse=True)
def eager_celery():
    celery_app.conf.task_always_eager = True
    yield
    celery_app.conf.task_always_eager = False


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(engine):
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    yield session
    session.close()


@pytest.fixture
def redis_client():
    return InMemoryRedis()


@pytest.fixture
def catalog():
    client = FakeProductClient()
    client.add(1, "Opening Ceremony - Category A", 120.00, 0, 50)
    client.add(2, "Athletics Final - Category B", 80.00, 0.1, 200)
    client.add(7, "Closing Ceremony - Standard", 50.00, 0.1, 10)
    client.add(9, "Fan Zone Pass", 100.00, 0, 10)
    return client


@pytest.fixture
def gateway():
    fake = FakePaymentGateway()
    set_gateway(fake)
    yield fake
    reset_gateway()


@pytest.fixture
def notifier():
    return MagicMock()


@pytest.fixture
def ticket_issuer():
    return MagicMock()


@pytest.fixture
def guest_store(redis_client):
    return GuestCartStore(client=redis_client, ttl=3600)


@pytest.fixture
def user_store(db):
    return UserCartStore(db)


@pytest.fixture
def coordinator(guest_store, user_store, catalog):
    return CartCoordinator(guest_store=guest_store, user_store=user_store, product_client=catalog)


@pytest.fixture
def orchestrator(db, catalog, gateway, notifier, ticket_issuer):
    return PaymentOrchestrator(
        db=db,
        product_client=catalog,
        gateway=gateway,
        notifier=notifier,
        ticket_issuer=ticket_issuer,
    )


@pytest.fixture
def refund_engine(db, gateway, notifier):
    return RefundEngine(db=db, gateway=gateway, notifier=notifier)


@pytest.fixture
def pending_payment(user_store, orchestrator):
    """Płatność pending na 100.00 (produkt 9, bez rabatu)."""
    user_store.add_item(42, 9, 1)
    cart = user_store.get_or_create_cart(42)
    return orchestrator.create_from_cart(42, cart.id, "stripe")


@pytest.fixture
def paid_payment(pending_payment, orchestrator):
    orchestrator.mark_as_paid(pending_payment)
    return pending_payment


@pytest.fixture
def client(db, redis_client, catalog, gateway, notifier, ticket_issuer):
    app = create_app()

    def override_db():
        yield db

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_product_client] = lambda: catalog
    app.dependency_overrides[get_coordinator] = lambda: CartCoordinator(
        guest_store=GuestCartStore(client=redis_client, ttl=3600),
        user_store=UserCartStore(db),
        product_client=catalog,
    )
    app.dependency_overrides[get_orchestrator] = lambda: PaymentOrchestrator(
        db=db,
        product_client=catalog,
        gateway=gateway,
        notifier=notifier,
        ticket_issuer=ticket_issuer,
    )
    app.dependency_overrides[get_refund_engine] = lambda: RefundEngine(
        db=db, gateway=gateway, notifier=notifier
    )

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def sign_webhook():
    """Nagłówek Stripe-Signature (t=...,v1=...) w formacie sprawdzanym przez SDK Stripe."""

    def sign(body: bytes, secret: str = "whsec_test", timestamp: int | None = None) -> str:
        timestamp = int(time.time()) if timestamp is None else timestamp
        signed = f"{timestamp}.".encode("utf-8") + body
        digest = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
        return f"t={timestamp},v1={digest}"

    return sign
