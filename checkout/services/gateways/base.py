"""Gateway adapter contract.

Each adapter talks to one provider and maps the provider's status vocabulary
into ProviderState. The confirmation router never sees provider-specific
states.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Mapping

import httpx

from checkout.errors import ERROR_GATEWAY_UNAVAILABLE, GatewayRejected, GatewayUnavailable
from checkout.logging import get_logger, sanitize_string_for_logging
from checkout.payments.constants import ProviderState

logger = get_logger(__name__)

# Single-digit-second bounds for every provider call
GATEWAY_TIMEOUT = httpx.Timeout(8.0, connect=5.0, read=8.0, write=8.0)


@dataclass
class GatewayTransaction:
    """Result of createTransaction."""
    provider_state: ProviderState
    redirect_url: str | None = None
    gateway_order_id: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class GatewayStatus:
    """Result of queryStatus."""
    provider_state: ProviderState
    transaction_id: str | None = None
    gateway_order_id: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)


@dataclass
class WebhookNotification:
    """Parsed push notification. At least one correlation id is set."""
    provider_state: ProviderState
    merchant_order_id: str | None = None
    gateway_order_id: str | None = None
    transaction_id: str | None = None
    raw: dict[str, Any] = field(default_factory=dict)


class GatewayAdapter(ABC):
    """One payment provider."""

    name: str = ""

    def __init__(self, http_client: httpx.AsyncClient | None = None):
        self._http_client = http_client

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Lazy creation of shared httpx client with timeouts."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=GATEWAY_TIMEOUT,
                limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
            )
        return self._http_client

    async def _request(self, method: str, url: str, **kwargs) -> dict[str, Any]:
        """Send a provider request and decode its JSON body.

        Transport errors and 5xx answers mean "unknown" and raise
        GatewayUnavailable. 4xx answers raise GatewayRejected.
        """
        client = await self._get_http_client()
        try:
            response = await client.request(method, url, **kwargs)
        except httpx.TransportError as e:
            logger.warning(f"{self.name} {method} {url} failed: {type(e).__name__}")
            raise GatewayUnavailable(ERROR_GATEWAY_UNAVAILABLE, gateway=self.name) from e

        if response.status_code >= 500:
            logger.warning(f"{self.name} {method} {url} returned {response.status_code}")
            raise GatewayUnavailable(ERROR_GATEWAY_UNAVAILABLE, gateway=self.name)

        try:
            body = response.json()
        except ValueError:
            body = {"raw": response.text}

        if response.status_code >= 400:
            logger.warning(
                f"{self.name} rejected {method} {url}: {response.status_code} "
                f"{sanitize_string_for_logging(response.text, 200)}"
            )
            raise GatewayRejected(response=body, http_status=response.status_code)

        return body if isinstance(body, dict) else {"data": body}

    @abstractmethod
    async def create_transaction(
        self,
        merchant_order_id: str,
        amount_minor_units: int,
        redirect_url: str,
        callback_url: str,
    ) -> GatewayTransaction:
        """Create the remote transaction. Raises GatewayUnavailable / GatewayRejected."""

    @abstractmethod
    async def query_status(self, merchant_order_id: str) -> GatewayStatus:
        """Ask the provider for the current state. Raises GatewayUnavailable."""

    def verify_webhook(self, headers: Mapping[str, str], raw_body: bytes) -> bool:
        """Check the provider signature on a push notification."""
        return False

    def parse_webhook(self, payload: dict[str, Any]) -> WebhookNotification:
        raise GatewayRejected(f"{self.name} does not send webhooks")

    def verify_callback(self, payload: dict[str, Any]) -> bool:
        """Check a client/legacy callback. Its body is never trusted for state."""
        return True

    def extract_callback_reference(self, payload: dict[str, Any]) -> tuple[str | None, str | None]:
        """(merchant_order_id, gateway_order_id) carried by a callback body."""
        return payload.get("merchantOrderId") or payload.get("merchant_order_id"), None

    async def aclose(self) -> None:
        if self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None
