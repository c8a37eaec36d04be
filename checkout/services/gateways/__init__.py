"""Payment gateway adapters.

Usage:
    from checkout.services.gateways import build_gateway_registry

    gateways = build_gateway_registry()
    adapter = gateways.get("phonepe")
"""
from checkout.errors import ERROR_UNKNOWN_GATEWAY, ValidationError
from checkout.payments.constants import PaymentGateway, normalize_gateway

from .base import GatewayAdapter, GatewayStatus, GatewayTransaction, WebhookNotification
from .cod import CashOnDeliveryAdapter
from .phonepe import PhonePeAdapter
from .razorpay import RazorpayAdapter


class GatewayRegistry:
    """Adapters keyed by canonical gateway name."""

    def __init__(self, adapters: dict[str, GatewayAdapter]):
        self.adapters = adapters

    def get(self, gateway: str | None) -> GatewayAdapter:
        name = normalize_gateway(gateway)
        adapter = self.adapters.get(name)
        if adapter is None:
            raise ValidationError(ERROR_UNKNOWN_GATEWAY, gateway=name)
        return adapter

    def __contains__(self, gateway: str) -> bool:
        return normalize_gateway(gateway) in self.adapters

    async def aclose(self) -> None:
        for adapter in self.adapters.values():
            await adapter.aclose()


def build_gateway_registry() -> GatewayRegistry:
    return GatewayRegistry({
        PaymentGateway.PHONEPE.value: PhonePeAdapter(),
        PaymentGateway.RAZORPAY.value: RazorpayAdapter(),
        PaymentGateway.COD.value: CashOnDeliveryAdapter(),
    })


__all__ = [
    "CashOnDeliveryAdapter",
    "GatewayAdapter",
    "GatewayRegistry",
    "GatewayStatus",
    "GatewayTransaction",
    "PhonePeAdapter",
    "RazorpayAdapter",
    "WebhookNotification",
    "build_gateway_registry",
]
