"""PhonePe (UPI) gateway adapter - Standard Checkout v2.

Auth is OAuth client-credentials; the access token is cached per process
until shortly before its stated expiry. Webhooks carry
``Authorization: sha256(username:password)``.
"""

import base64
import binascii
import hashlib
import hmac
import json
import os
import time
from typing import Any, Mapping

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from checkout.errors import GatewayRejected, GatewayUnavailable
from checkout.logging import get_logger, sanitize_id_for_logging
from checkout.payments.config import get_phonepe_hosts, validate_gateway_config
from checkout.payments.constants import PaymentGateway, ProviderState
from checkout.services.token_cache import TokenCache, get_token_cache

from .base import GatewayAdapter, GatewayStatus, GatewayTransaction, WebhookNotification

logger = get_logger(__name__)

# Seconds the hosted checkout page stays payable
ORDER_EXPIRE_AFTER = 1200

STATE_MAP: dict[str, ProviderState] = {
    "PENDING": ProviderState.PENDING,
    "CREATED": ProviderState.PENDING,
    "COMPLETED": ProviderState.COMPLETED,
    "FAILED": ProviderState.FAILED,
    "EXPIRED": ProviderState.EXPIRED,
}

# errorCode values PhonePe uses for orders that timed out unpaid
EXPIRY_ERROR_CODES = {"TIMED_OUT", "ORDER_EXPIRED"}


def map_state(state: str | None, error_code: str | None = None) -> ProviderState:
    mapped = STATE_MAP.get((state or "").upper(), ProviderState.PENDING)
    if mapped == ProviderState.FAILED and (error_code or "").upper() in EXPIRY_ERROR_CODES:
        return ProviderState.EXPIRED
    return mapped


def _last_transaction_id(body: dict[str, Any]) -> str | None:
    details = body.get("paymentDetails") or []
    if details and isinstance(details[-1], dict):
        return details[-1].get("transactionId")
    return None


class PhonePeAdapter(GatewayAdapter):
    """PhonePe Standard Checkout."""

    name = PaymentGateway.PHONEPE.value

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        token_cache: TokenCache | None = None,
    ):
        super().__init__(http_client)
        self.client_id = os.environ.get("PHONEPE_CLIENT_ID", "")
        self.client_secret = os.environ.get("PHONEPE_CLIENT_SECRET", "")
        self.client_version = os.environ.get("PHONEPE_CLIENT_VERSION", "1")
        self.webhook_username = os.environ.get("PHONEPE_WEBHOOK_USERNAME", "")
        self.webhook_password = os.environ.get("PHONEPE_WEBHOOK_PASSWORD", "")
        self.oauth_base, self.pg_base = get_phonepe_hosts()
        self.token_cache = token_cache or get_token_cache()

    # ==================== AUTH ====================

    @retry(
        retry=retry_if_exception_type(GatewayUnavailable),
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=0.2, max=1),
        reraise=True,
    )
    async def _fetch_token(self) -> tuple[str, float]:
        body = await self._request(
            "POST",
            f"{self.oauth_base}/v1/oauth/token",
            data={
                "client_id": self.client_id,
                "client_version": self.client_version,
                "client_secret": self.client_secret,
                "grant_type": "client_credentials",
            },
        )
        token = body.get("access_token")
        if not token:
            raise GatewayRejected("PhonePe token response has no access_token", response=body)
        expires_at = float(body.get("expires_at") or time.time() + int(body.get("expires_in") or 0))
        return token, expires_at

    async def _auth_headers(self) -> dict[str, str]:
        validate_gateway_config(self.name)
        token = await self.token_cache.get_or_fetch(self.name, self._fetch_token)
        return {"Authorization": f"O-Bearer {token}", "Content-Type": "application/json"}

    async def _authorized_request(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        """Call the PG API; a 401 drops the cached token and retries once with a fresh one."""
        headers = await self._auth_headers()
        try:
            return await self._request(method, url, headers=headers, **kwargs)
        except GatewayRejected as e:
            if e.http_status != 401:
                raise
        logger.warning("PhonePe rejected the cached access token; fetching a new one")
        self.token_cache.invalidate(self.name)
        return await self._request(method, url, headers=await self._auth_headers(), **kwargs)

    # ==================== API ====================

    async def create_transaction(
        self,
        merchant_order_id: str,
        amount_minor_units: int,
        redirect_url: str,
        callback_url: str,
    ) -> GatewayTransaction:
        payload = {
            "merchantOrderId": merchant_order_id,
            "amount": amount_minor_units,
            "expireAfter": ORDER_EXPIRE_AFTER,
            "metaInfo": {"udf1": callback_url},
            "paymentFlow": {
                "type": "PG_CHECKOUT",
                "merchantUrls": {"redirectUrl": redirect_url},
            },
        }
        body = await self._authorized_request(
            "POST", f"{self.pg_base}/checkout/v2/pay", json=payload
        )

        if not body.get("orderId") or not body.get("redirectUrl"):
            raise GatewayRejected("PhonePe pay response is missing orderId/redirectUrl", response=body)

        logger.info(
            f"PhonePe order {sanitize_id_for_logging(body['orderId'])} created for "
            f"{sanitize_id_for_logging(merchant_order_id)}"
        )
        return GatewayTransaction(
            provider_state=ProviderState.INITIATED,
            redirect_url=body["redirectUrl"],
            gateway_order_id=body["orderId"],
            raw=body,
        )

    async def query_status(self, merchant_order_id: str) -> GatewayStatus:
        body = await self._authorized_request(
            "GET",
            f"{self.pg_base}/checkout/v2/order/{merchant_order_id}/status",
            params={"details": "false"},
        )
        return GatewayStatus(
            provider_state=map_state(body.get("state"), body.get("errorCode")),
            transaction_id=_last_transaction_id(body),
            gateway_order_id=body.get("orderId"),
            raw=body,
        )

    # ==================== WEBHOOK / CALLBACK ====================

    def expected_authorization(self) -> str:
        credentials = f"{self.webhook_username}:{self.webhook_password}"
        return hashlib.sha256(credentials.encode("utf-8")).hexdigest()

    def verify_webhook(self, headers: Mapping[str, str], raw_body: bytes) -> bool:
        if not self.webhook_username or not self.webhook_password:
            logger.error("PhonePe webhook credentials not configured")
            return False
        received = (headers.get("authorization") or headers.get("Authorization") or "").strip()
        if received.lower().startswith("sha256 "):
            received = received[7:].strip()
        return hmac.compare_digest(received.lower(), self.expected_authorization())

    def parse_webhook(self, payload: dict[str, Any]) -> WebhookNotification:
        data = payload.get("payload") or {}
        state = data.get("state")
        if not state:
            event = str(payload.get("event") or "")
            state = event.rsplit(".", 1)[-1].upper() if event else None
        return WebhookNotification(
            provider_state=map_state(state, data.get("errorCode")),
            merchant_order_id=data.get("merchantOrderId"),
            gateway_order_id=data.get("orderId"),
            transaction_id=_last_transaction_id(data),
            raw=payload,
        )

    def extract_callback_reference(self, payload: dict[str, Any]) -> tuple[str | None, str | None]:
        """Legacy callbacks post ``{"response": base64(json)}``; newer ones post ids directly."""
        encoded = payload.get("response")
        if encoded:
            try:
                decoded = json.loads(base64.b64decode(encoded))
            except (binascii.Error, ValueError, TypeError):
                logger.warning("Undecodable PhonePe callback body")
                decoded = {}
            data = decoded.get("data") if isinstance(decoded, dict) else None
            data = data if isinstance(data, dict) else {}
            reference = data.get("merchantOrderId") or data.get("merchantTransactionId")
            if reference:
                return reference, data.get("orderId")
        reference = (
            payload.get("merchantOrderId")
            or payload.get("merchantTransactionId")
            or payload.get("merchant_order_id")
        )
        return reference, payload.get("orderId")
