# storefront/api/deps.py
from functools import lru_cache
from typing import Dict

import redis
from fastapi import Depends, Query, Request, Response
from sqlalchemy.orm import Session

from storefront.data.database import get_db
from storefront.domain.identity import GuestIdentity, Identity, UserIdentity, resolve_guest_id
from storefront.services.cart_coordinator import CartCoordinator
from storefront.services.guest_cart_store import GuestCartStore
from storefront.services.payment_gateway import get_gateway
from storefront.services.payment_orchestrator import PaymentOrchestrator
from storefront.services.product_client import ProductClient
from storefront.services.refund_engine import RefundEngine
from storefront.services.user_cart_store import UserCartStore
from storefront.services.webhook_ingress import WebhookIngress
from storefront.utils.settings import (
    REDIS_URL,
    GUEST_CART_HEADER,
    GUEST_CART_SESSION_KEY,
    GUEST_CART_TTL_SECONDS,
)


@lru_cache(maxsize=1)
def get_redis_client() -> redis.Redis:
    # jeden pool połączeń na proces
    return redis.Redis.from_url(REDIS_URL, decode_responses=True)


def get_product_client() -> ProductClient:
    return ProductClient()


def guest_session(request: Request) -> Dict[str, str]:
    """Sesja gościa = ciasteczko guest_cart_id."""
    session = {}
    value = request.cookies.get(GUEST_CART_SESSION_KEY)
    if value:
        session[GUEST_CART_SESSION_KEY] = value
    return session


def get_identity(
    request: Request,
    response: Response,
    user_id: int | None = Query(None, gt=0),
) -> Identity:
    # uwierzytelnianie jest poza tym serwisem, user_id przychodzi już zweryfikowany
    if user_id is not None:
        return UserIdentity(user_id=user_id)

    session = guest_session(request)
    guest_id = resolve_guest_id(request.headers.get(GUEST_CART_HEADER), session)

    if session.get(GUEST_CART_SESSION_KEY) != request.cookies.get(GUEST_CART_SESSION_KEY):
        response.set_cookie(
            GUEST_CART_SESSION_KEY,
            session[GUEST_CART_SESSION_KEY],
            max_age=GUEST_CART_TTL_SECONDS,
            httponly=True,
            samesite="lax",
        )
    return GuestIdentity(guest_id=guest_id)


def get_coordinator(
    db: Session = Depends(get_db),
    product_client: ProductClient = Depends(get_product_client),
) -> CartCoordinator:
    return CartCoordinator(
        guest_store=GuestCartStore(client=get_redis_client()),
        user_store=UserCartStore(db),
        product_client=product_client,
    )


def get_orchestrator(
    db: Session = Depends(get_db),
    product_client: ProductClient = Depends(get_product_client),
) -> PaymentOrchestrator:
    return PaymentOrchestrator(db=db, product_client=product_client, gateway=get_gateway())


def get_refund_engine(db: Session = Depends(get_db)) -> RefundEngine:
    return RefundEngine(db=db, gateway=get_gateway())


def get_webhook_ingress(
    orchestrator: PaymentOrchestrator = Depends(get_orchestrator),
    refund_engine: RefundEngine = Depends(get_refund_engine),
) -> WebhookIngress:
    return WebhookIngress(orchestrator=orchestrator, refund_engine=refund_engine)
