# storefront/api/errors.py
from fastapi import HTTPException

from storefront.domain.errors import (
    ConflictError,
    GatewayUnavailableError,
    NotFoundError,
    StockUnavailableError,
    StorefrontError,
    ValidationError,
)


def to_http_exception(error: StorefrontError) -> HTTPException:
    if isinstance(error, StockUnavailableError):
        return HTTPException(
            status_code=409,
            detail={"message": error.message, "details": error.details},
        )
    if isinstance(error, ValidationError):
        return HTTPException(status_code=422, detail=error.message)
    if isinstance(error, NotFoundError):
        return HTTPException(status_code=404, detail=error.message)
    if isinstance(error, ConflictError):
        return HTTPException(status_code=409, detail=error.message)
    if isinstance(error, GatewayUnavailableError):
        # 502: klient może spróbować ponownie
        return HTTPException(status_code=502, detail=error.message)
    return HTTPException(status_code=500, detail=error.message or "Internal error")
