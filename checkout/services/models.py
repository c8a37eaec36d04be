"""Database Models - Pydantic models for all persisted entities."""
from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from checkout.services.money import to_decimal as _to_decimal


class Product(BaseModel):
    """Catalog product. ``price`` is None when only variants are priced."""
    id: str
    name: str
    price: Optional[Decimal] = None
    stock: int = 0
    is_active: bool = True
    weight_grams: Optional[int] = None

    class Config:
        extra = "ignore"

    @field_validator("price", mode="before")
    @classmethod
    def convert_price(cls, v):
        return None if v is None else _to_decimal(v)


class ProductVariant(BaseModel):
    """Sellable variant of a product (e.g. a size)."""
    id: str
    product_id: str
    size: Optional[str] = None
    price: Decimal
    stock: int = 0
    position: int = 0

    class Config:
        extra = "ignore"

    @field_validator("price", mode="before")
    @classmethod
    def convert_price(cls, v):
        return _to_decimal(v)


class CartLine(BaseModel):
    """One requested line: product, optional variant selector (id or size), quantity."""
    product_id: str
    variant: Optional[str] = None
    quantity: int


class ResolvedLine(BaseModel):
    """Catalog answer for a cart line."""
    product_id: str
    variant_id: Optional[str] = None
    display_name: str
    unit_price: Decimal
    available_stock: int


class TotalsLine(BaseModel):
    product_id: str
    variant_id: Optional[str] = None
    variant: Optional[str] = None
    display_name: str
    unit_price: Decimal
    quantity: int
    line_total: Decimal


class Totals(BaseModel):
    """Immutable monetary snapshot computed server-side."""
    subtotal: Decimal
    shipping_fee: Decimal
    tax: Decimal
    discount_amount: Decimal
    total: Decimal
    total_minor_units: int
    currency: str = "INR"
    coupon_code: Optional[str] = None
    lines: list[TotalsLine] = Field(default_factory=list)

    @field_validator("subtotal", "shipping_fee", "tax", "discount_amount", "total", mode="before")
    @classmethod
    def convert_to_decimal(cls, v):
        return _to_decimal(v)


class CustomerInfo(BaseModel):
    full_name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None


class ShippingAddress(BaseModel):
    full_name: str = ""
    address: str = ""
    city: str = ""
    state: str = ""
    postal_code: str = ""
    country: str = "India"
    phone: str = ""


class PaymentIntent(BaseModel):
    """Durable record of one checkout attempt."""
    intent_id: str
    merchant_order_id: Optional[str] = None
    gateway: str
    order_items: list[CartLine]
    customer_info: CustomerInfo
    shipping_address: ShippingAddress
    totals: Totals
    coupon_code: Optional[str] = None
    status: str = "pending"
    stock_adjusted: bool = False
    gateway_response: Optional[dict[str, Any]] = None
    gateway_order_id: Optional[str] = None
    gateway_transaction_id: Optional[str] = None
    redirect_url: Optional[str] = None
    paid_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    reconciliation_required: bool = False
    reconciliation_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        extra = "ignore"


class PaymentAttempt(BaseModel):
    """Append-only record of one gateway create-transaction call."""
    attempt_id: str
    intent_id: str
    amount_minor_units: int
    provider_response: Optional[dict[str, Any]] = None
    attempt_status: str
    created_at: Optional[datetime] = None

    class Config:
        extra = "ignore"


class OrderItem(BaseModel):
    product_id: str
    variant_id: Optional[str] = None
    variant: Optional[str] = None
    display_name: str
    unit_price: Decimal
    quantity: int


class Order(BaseModel):
    """Commercial commitment materialized from a paid intent."""
    order_id: str
    intent_id: str
    merchant_order_id: Optional[str] = None
    items: list[OrderItem]
    customer_info: CustomerInfo
    shipping_address: ShippingAddress
    subtotal: Decimal
    shipping_fee: Decimal
    tax: Decimal
    discount_amount: Decimal
    total: Decimal
    total_minor_units: int
    currency: str = "INR"
    coupon_code: Optional[str] = None
    payment_method: str
    payment_status: str = "paid"
    gateway_transaction_id: Optional[str] = None
    status: str = "processing"
    shipping_push_status: Optional[str] = None
    carrier_order_id: Optional[str] = None
    tracking_number: Optional[str] = None
    carrier_name: Optional[str] = None
    shipping_error: Optional[str] = None
    email_status: Optional[str] = None
    email_error: Optional[str] = None
    paid_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        extra = "ignore"

    @field_validator("subtotal", "shipping_fee", "tax", "discount_amount", "total", mode="before")
    @classmethod
    def convert_to_decimal(cls, v):
        return _to_decimal(v)
