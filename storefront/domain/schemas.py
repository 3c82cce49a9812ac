# storefront/domain/schemas.py
from pydantic import BaseModel, Field, ConfigDict
from typing import List, Optional
from decimal import Decimal
from datetime import date, datetime

from storefront.domain.enums import PaymentMethod, PaymentStatus


class SetQuantityIn(BaseModel):
    """Nowa ilość produktu w koszyku; 0 usuwa pozycje."""

    quantity: int = Field(..., ge=0, description="Quantity to set (0 removes the line)")


class CartLineOut(BaseModel):
    product_id: int
    product_name: str
    quantity: int
    in_stock: bool
    available_quantity: int
    unit_price: Decimal
    total_price: Decimal
    original_price: Decimal
    discount_rate: Decimal


class CartMetaOut(BaseModel):
    guest_cart_id: Optional[str] = None


class CartOut(BaseModel):
    kind: str
    cart_id: Optional[int] = None
    items: List[CartLineOut]
    total: Decimal
    meta: CartMetaOut = CartMetaOut()


class MergeOut(BaseModel):
    merged_lines: int


class PaymentCreate(BaseModel):
    user_id: int = Field(..., gt=0)
    cart_id: int = Field(..., gt=0)
    payment_method: PaymentMethod = PaymentMethod.STRIPE


class PaymentInitiationOut(BaseModel):
    uuid: str
    status: PaymentStatus
    amount: Decimal
    transaction_id: Optional[str] = None
    client_secret: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class PaymentOut(BaseModel):
    uuid: str
    user_id: int
    cart_id: int
    amount: Decimal
    refunded_amount: Decimal
    status: PaymentStatus
    payment_method: PaymentMethod
    transaction_id: Optional[str] = None
    cart_snapshot: dict
    paid_at: Optional[datetime] = None
    refunded_at: Optional[datetime] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PaymentPageOut(BaseModel):
    items: List[PaymentOut]
    total: int
    page: int
    per_page: int


class PaymentFilters(BaseModel):
    q: Optional[str] = None
    status: Optional[PaymentStatus] = None
    payment_method: Optional[PaymentMethod] = None
    user_id: Optional[int] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    amount_min: Optional[Decimal] = Field(None, ge=0)
    amount_max: Optional[Decimal] = Field(None, ge=0)


class PaymentStatusOut(BaseModel):
    status: PaymentStatus
    paid_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class RefundIn(BaseModel):
    amount: Decimal = Field(..., gt=0, decimal_places=2)


class RefundOut(BaseModel):
    uuid: str
    refunded_amount: Decimal
    status: PaymentStatus
    refunded_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
