"""Shipping partner client.

Pushes a materialized order to the shipping partner's REST API and returns
the carrier's correlation ids. Raises ShippingPushError on any failure; the
order materializer records it and moves on.
"""

import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import httpx

from checkout.logging import get_logger, sanitize_id_for_logging
from checkout.payments.constants import PaymentGateway
from checkout.services.models import Order
from checkout.services.money import to_float

logger = get_logger(__name__)

DEFAULT_WEIGHT_GRAMS = 500
DEFAULT_DIMENSIONS_CM = {"length": 10, "breadth": 10, "height": 5}


class ShippingPushError(Exception):
    """The shipping partner did not accept the order."""


@dataclass
class ShipmentResult:
    carrier_order_id: str
    tracking_number: str | None = None
    carrier_name: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)


class ShippingPusher:
    """Shipping partner REST client."""

    def __init__(self, http_client: httpx.AsyncClient | None = None):
        self.api_url = os.environ.get("SHIPPING_API_URL", "").rstrip("/")
        self.public_key = os.environ.get("SHIPPING_PUBLIC_KEY", "")
        self.private_key = os.environ.get("SHIPPING_PRIVATE_KEY", "")
        self.warehouse_id = os.environ.get("SHIPPING_WAREHOUSE_ID", "")
        self.carrier_name = os.environ.get("SHIPPING_CARRIER_NAME", "shipping-partner")
        self._http_client = http_client

    def is_configured(self) -> bool:
        return bool(self.api_url and self.public_key and self.private_key)

    async def _get_http_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=httpx.Timeout(10.0, connect=5.0))
        return self._http_client

    def build_payload(self, order: Order) -> dict[str, Any]:
        address = order.shipping_address
        is_cod = order.payment_method == PaymentGateway.COD.value
        placed_at = order.created_at or order.paid_at or datetime.now(timezone.utc)
        return {
            "order_id": order.order_id,
            "order_date": placed_at.date().isoformat(),
            "consignee_name": address.full_name or order.customer_info.full_name,
            "consignee_phone": address.phone,
            "consignee_email": order.customer_info.email,
            "consignee_address": address.address,
            "consignee_city": address.city,
            "consignee_state": address.state,
            "consignee_pincode": address.postal_code,
            "consignee_country": address.country,
            "product_detail": [
                {
                    "name": item.display_name,
                    "sku_number": item.variant_id or item.product_id,
                    "quantity": item.quantity,
                    "unit_price": to_float(item.unit_price),
                }
                for item in order.items
            ],
            "payment_type": "COD" if is_cod else "PREPAID",
            "order_amount": to_float(order.total),
            "cod_amount": to_float(order.total) if is_cod else 0,
            "weight": DEFAULT_WEIGHT_GRAMS,
            **DEFAULT_DIMENSIONS_CM,
            "warehouse_id": self.warehouse_id,
        }

    async def push(self, order: Order) -> ShipmentResult:
        if not self.is_configured():
            raise ShippingPushError("Shipping partner not configured")

        client = await self._get_http_client()
        try:
            response = await client.post(
                f"{self.api_url}/push-order",
                json=self.build_payload(order),
                headers={"public-key": self.public_key, "private-key": self.private_key},
            )
        except httpx.HTTPError as e:
            raise ShippingPushError(f"{type(e).__name__}: {e}") from e

        if response.status_code >= 400:
            raise ShippingPushError(f"HTTP {response.status_code}: {response.text}")

        try:
            body = response.json()
        except ValueError as e:
            raise ShippingPushError(f"Invalid JSON from shipping partner: {response.text}") from e

        data = body.get("data", body) if isinstance(body, dict) else {}
        carrier_order_id = data.get("order_id") or data.get("reference_id")
        if not carrier_order_id:
            raise ShippingPushError(f"Shipping partner returned no order id: {body}")

        logger.info(f"Order {sanitize_id_for_logging(order.order_id)} pushed to shipping partner")
        return ShipmentResult(
            carrier_order_id=str(carrier_order_id),
            tracking_number=data.get("awb_number"),
            carrier_name=data.get("courier_name") or self.carrier_name,
            raw=data,
        )

    async def aclose(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
