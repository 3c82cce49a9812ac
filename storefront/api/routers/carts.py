#storefront/api/routers/carts.py
from fastapi import APIRouter, Depends, Query, Request, Response

from storefront.api.deps import get_coordinator, get_identity, guest_session
from storefront.api.errors import to_http_exception
from storefront.domain.errors import StorefrontError
from storefront.domain.identity import Identity, parse_uuid
from storefront.domain.schemas import CartOut, MergeOut, SetQuantityIn
from storefront.services.cart_coordinator import CartCoordinator
from storefront.utils.settings import GUEST_CART_HEADER, GUEST_CART_SESSION_KEY

router = APIRouter(prefix="/cart", tags=["cart"])


@router.get("", response_model=CartOut)
def show_cart(
    identity: Identity = Depends(get_identity),
    svc: CartCoordinator = Depends(get_coordinator),
):
    view = svc.view_cart(identity)
    return {
        **view,
        "meta": {"guest_cart_id": view["guest_id"]},
    }


@router.put("/items/{product_id}", status_code=204)
def update_item(
    product_id: int,
    payload: SetQuantityIn,
    identity: Identity = Depends(get_identity),
    svc: CartCoordinator = Depends(get_coordinator),
):
    try:
        svc.set_quantity(identity, product_id, payload.quantity)
    except StorefrontError as e:
        raise to_http_exception(e)


@router.delete("/items/{product_id}", status_code=204)
def remove_item(
    product_id: int,
    quantity: int | None = Query(None, gt=0),
    identity: Identity = Depends(get_identity),
    svc: CartCoordinator = Depends(get_coordinator),
):
    try:
        svc.remove_item(identity, product_id, quantity)
    except StorefrontError as e:
        raise to_http_exception(e)


@router.delete("", status_code=204)
def clear_cart(
    identity: Identity = Depends(get_identity),
    svc: CartCoordinator = Depends(get_coordinator),
):
    svc.clear(identity)


@router.post("/merge", response_model=MergeOut)
def merge_guest_cart(
    request: Request,
    response: Response,
    user_id: int = Query(..., gt=0),
    svc: CartCoordinator = Depends(get_coordinator),
):
    """
    Wołane przez warstwę logowania po udanym logowaniu/weryfikacji maila.
    Nie mintujemy tu nowego gościa: brak koszyka gościa = nic do przeniesienia.
    """
    session = guest_session(request)
    guest_id = parse_uuid(request.headers.get(GUEST_CART_HEADER)) or parse_uuid(
        session.get(GUEST_CART_SESSION_KEY)
    )
    if not guest_id:
        return {"merged_lines": 0}

    try:
        merged = svc.merge_guest_into_user(guest_id, user_id, session)
    except StorefrontError as e:
        raise to_http_exception(e)

    response.delete_cookie(GUEST_CART_SESSION_KEY)
    return {"merged_lines": merged}
