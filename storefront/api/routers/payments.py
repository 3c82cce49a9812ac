# storefront/api/routers/payments.py
from typing import Literal

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from storefront.api.deps import get_orchestrator, get_refund_engine, get_webhook_ingress
from storefront.api.errors import to_http_exception
from storefront.domain.errors import StorefrontError
from storefront.domain.schemas import (
    PaymentCreate,
    PaymentFilters,
    PaymentInitiationOut,
    PaymentPageOut,
    PaymentStatusOut,
    RefundIn,
    RefundOut,
)
from storefront.services.payment_orchestrator import PaymentOrchestrator
from storefront.services.refund_engine import RefundEngine
from storefront.services.webhook_ingress import WebhookIngress

router = APIRouter(prefix="/payments", tags=["payments"])


@router.post("", response_model=PaymentInitiationOut, status_code=201)
def create_payment(
    payload: PaymentCreate,
    svc: PaymentOrchestrator = Depends(get_orchestrator),
):
    """
    Tworzy płatność (intent w bramce) z koszyka usera.
    Ponowiony request dla tego samego koszyka zwraca tę samą płatność.
    """
    try:
        return svc.create_from_cart(payload.user_id, payload.cart_id, payload.payment_method.value)
    except StorefrontError as e:
        raise to_http_exception(e)


@router.get("", response_model=PaymentPageOut)
def list_payments(
    filters: PaymentFilters = Depends(),
    sort_by: Literal["created_at", "amount", "status", "paid_at"] = Query("created_at"),
    sort_order: Literal["asc", "desc"] = Query("desc"),
    page: int = Query(1, ge=1),
    per_page: int = Query(15, ge=1, le=100),
    svc: PaymentOrchestrator = Depends(get_orchestrator),
):
    criteria = filters.model_dump(exclude_none=True)
    for field in ("status", "payment_method"):
        if field in criteria:
            criteria[field] = criteria[field].value

    return svc.list_payments(criteria, sort_by, sort_order, page, per_page)


@router.post("/webhook")
async def webhook(
    request: Request,
    ingress: WebhookIngress = Depends(get_webhook_ingress),
):
    raw_body = await request.body()
    result = await run_in_threadpool(
        ingress.handle,
        raw_body,
        request.headers.get("Stripe-Signature"),
    )
    if result.body is None:
        return Response(status_code=result.status_code)
    return JSONResponse(result.body, status_code=result.status_code)


@router.get("/{uuid}/status", response_model=PaymentStatusOut)
def payment_status(
    uuid: str,
    user_id: int = Query(..., gt=0),
    svc: PaymentOrchestrator = Depends(get_orchestrator),
):
    try:
        return svc.find_by_uuid_for_user(uuid, user_id)
    except StorefrontError as e:
        raise to_http_exception(e)


@router.post("/{uuid}/refund", response_model=RefundOut)
def refund_payment(
    uuid: str,
    payload: RefundIn,
    svc: RefundEngine = Depends(get_refund_engine),
):
    # tylko admin; autoryzacja jest poza tym serwisem
    try:
        return svc.refund_by_uuid(uuid, payload.amount)
    except StorefrontError as e:
        raise to_http_exception(e)
