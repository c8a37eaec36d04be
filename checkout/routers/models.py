"""
Checkout API Pydantic Models

Request bodies accept the storefront's camelCase keys as well as snake_case.
Cart and contact payloads stay loosely typed here; they are normalized and
validated by the intent service so every shape error reads the same.
"""
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, Field


class CreateIntentRequest(BaseModel):
    items: list[dict[str, Any]] = Field(
        default_factory=list,
        validation_alias=AliasChoices("items", "orderItems", "order_items", "cart"),
    )
    customer_info: Optional[dict[str, Any]] = Field(
        default=None, validation_alias=AliasChoices("customer_info", "customerInfo", "customer")
    )
    shipping_address: Optional[dict[str, Any]] = Field(
        default=None,
        validation_alias=AliasChoices("shipping_address", "shippingAddress", "shipping"),
    )
    coupon_code: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("coupon_code", "couponCode", "coupon")
    )
    gateway: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("gateway", "paymentMethod", "payment_method")
    )


class ValidateCouponRequest(BaseModel):
    code: str
    subtotal: float


class CheckStockRequest(BaseModel):
    items: list[dict[str, Any]] = Field(
        default_factory=list, validation_alias=AliasChoices("items", "orderItems", "order_items")
    )


class UpdateOrderStatusRequest(BaseModel):
    status: str
