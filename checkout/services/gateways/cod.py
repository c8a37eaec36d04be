"""Cash on delivery adapter.

No remote provider: the order commitment is acknowledged at once and the
status query reports it as completed, so COD carts go through the same
paid transition as prepaid ones. Collection happens at the door.
"""
from typing import Any

from checkout.payments.constants import PaymentGateway, ProviderState

from .base import GatewayAdapter, GatewayStatus, GatewayTransaction


class CashOnDeliveryAdapter(GatewayAdapter):
    name = PaymentGateway.COD.value

    async def create_transaction(
        self,
        merchant_order_id: str,
        amount_minor_units: int,
        redirect_url: str,
        callback_url: str,
    ) -> GatewayTransaction:
        raw: dict[str, Any] = {
            "merchantOrderId": merchant_order_id,
            "amount": amount_minor_units,
            "mode": "cod",
        }
        return GatewayTransaction(
            provider_state=ProviderState.INITIATED,
            redirect_url=redirect_url,
            raw=raw,
        )

    async def query_status(self, merchant_order_id: str) -> GatewayStatus:
        return GatewayStatus(
            provider_state=ProviderState.COMPLETED,
            raw={"merchantOrderId": merchant_order_id, "mode": "cod"},
        )
