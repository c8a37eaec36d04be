"""Razorpay (card network) gateway adapter - Orders API.

The merchant order id travels as the Razorpay order ``receipt`` so status
can be looked up by it. Payment itself happens in Razorpay's client-side
checkout, so there is no redirect URL.
"""

import hashlib
import hmac
import os
from typing import Any, Mapping

import httpx

from checkout.errors import GatewayRejected
from checkout.logging import get_logger, sanitize_id_for_logging
from checkout.payments.config import validate_gateway_config
from checkout.payments.constants import PaymentGateway, ProviderState

from .base import GatewayAdapter, GatewayStatus, GatewayTransaction, WebhookNotification

logger = get_logger(__name__)

RAZORPAY_API_URL = "https://api.razorpay.com/v1"

ORDER_STATE_MAP: dict[str, ProviderState] = {
    "created": ProviderState.PENDING,
    "attempted": ProviderState.PENDING,
    "paid": ProviderState.COMPLETED,
}

# A failed payment leaves the order open for another try in the same checkout
EVENT_STATE_MAP: dict[str, ProviderState] = {
    "order.paid": ProviderState.COMPLETED,
    "payment.captured": ProviderState.COMPLETED,
    "payment.authorized": ProviderState.PENDING,
    "payment.failed": ProviderState.PENDING,
}


def _sign(secret: str, message: bytes) -> str:
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


class RazorpayAdapter(GatewayAdapter):
    """Razorpay Orders API."""

    name = PaymentGateway.RAZORPAY.value

    def __init__(self, http_client: httpx.AsyncClient | None = None):
        super().__init__(http_client)
        self.key_id = os.environ.get("RAZORPAY_KEY_ID", "")
        self.key_secret = os.environ.get("RAZORPAY_KEY_SECRET", "")
        self.webhook_secret = os.environ.get("RAZORPAY_WEBHOOK_SECRET", "")
        self.currency = os.environ.get("CURRENCY", "INR")
        self.api_url = os.environ.get("RAZORPAY_API_URL", RAZORPAY_API_URL).rstrip("/")

    def _auth(self) -> tuple[str, str]:
        validate_gateway_config(self.name)
        return self.key_id, self.key_secret

    async def create_transaction(
        self,
        merchant_order_id: str,
        amount_minor_units: int,
        redirect_url: str,
        callback_url: str,
    ) -> GatewayTransaction:
        body = await self._request(
            "POST",
            f"{self.api_url}/orders",
            auth=self._auth(),
            json={
                "amount": amount_minor_units,
                "currency": self.currency,
                "receipt": merchant_order_id,
                "notes": {"merchant_order_id": merchant_order_id},
            },
        )
        if not body.get("id") or body.get("status") != "created":
            raise GatewayRejected("Razorpay order was not created", response=body)

        logger.info(
            f"Razorpay order {sanitize_id_for_logging(body['id'])} created for "
            f"{sanitize_id_for_logging(merchant_order_id)}"
        )
        return GatewayTransaction(
            provider_state=ProviderState.INITIATED,
            gateway_order_id=body["id"],
            raw=body,
        )

    async def query_status(self, merchant_order_id: str) -> GatewayStatus:
        auth = self._auth()
        body = await self._request(
            "GET", f"{self.api_url}/orders", auth=auth, params={"receipt": merchant_order_id}
        )
        orders = body.get("items") or []
        if not orders:
            return GatewayStatus(provider_state=ProviderState.PENDING, raw=body)

        order = orders[0]
        state = ORDER_STATE_MAP.get(str(order.get("status")), ProviderState.PENDING)
        transaction_id = None
        if state == ProviderState.COMPLETED:
            payments = await self._request(
                "GET", f"{self.api_url}/orders/{order['id']}/payments", auth=auth
            )
            captured = [
                p for p in payments.get("items") or [] if p.get("status") == "captured"
            ]
            if captured:
                transaction_id = captured[0].get("id")

        return GatewayStatus(
            provider_state=state,
            transaction_id=transaction_id,
            gateway_order_id=order.get("id"),
            raw=order,
        )

    # ==================== WEBHOOK / CALLBACK ====================

    def verify_webhook(self, headers: Mapping[str, str], raw_body: bytes) -> bool:
        if not self.webhook_secret:
            logger.error("RAZORPAY_WEBHOOK_SECRET not configured")
            return False
        received = headers.get("x-razorpay-signature") or headers.get("X-Razorpay-Signature") or ""
        return hmac.compare_digest(received, _sign(self.webhook_secret, raw_body))

    def parse_webhook(self, payload: dict[str, Any]) -> WebhookNotification:
        event = str(payload.get("event") or "")
        entities = payload.get("payload") or {}
        payment = (entities.get("payment") or {}).get("entity") or {}
        order = (entities.get("order") or {}).get("entity") or {}
        notes = order.get("notes") or payment.get("notes") or {}
        if not isinstance(notes, dict):
            notes = {}

        return WebhookNotification(
            provider_state=EVENT_STATE_MAP.get(event, ProviderState.PENDING),
            merchant_order_id=order.get("receipt") or notes.get("merchant_order_id"),
            gateway_order_id=order.get("id") or payment.get("order_id"),
            transaction_id=payment.get("id"),
            raw=payload,
        )

    def verify_callback(self, payload: dict[str, Any]) -> bool:
        """Checkout handler signature: HMAC(order_id|payment_id, key_secret)."""
        order_id = payload.get("razorpay_order_id") or ""
        payment_id = payload.get("razorpay_payment_id") or ""
        signature = payload.get("razorpay_signature") or ""
        if not (order_id and payment_id and signature and self.key_secret):
            return False
        expected = _sign(self.key_secret, f"{order_id}|{payment_id}".encode("utf-8"))
        return hmac.compare_digest(signature, expected)

    def extract_callback_reference(self, payload: dict[str, Any]) -> tuple[str | None, str | None]:
        return payload.get("merchant_order_id"), payload.get("razorpay_order_id")
