"""Order Repository - order inserts and side-effect bookkeeping.

Uniqueness of intent_id / merchant_order_id is enforced by the table, so
``insert`` raises a postgrest APIError (code 23505) for a duplicate.
"""
from datetime import datetime, timezone
from typing import Any, Optional

from checkout.services.models import Order

from .base import BaseRepository


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class OrderRepository(BaseRepository):
    """Order database operations."""

    async def insert(self, order: Order) -> Order:
        data = order.model_dump(mode="json", exclude_none=True)
        data["created_at"] = data["updated_at"] = _now_iso()
        result = await self.client.table("orders").insert(data).execute()
        return Order(**result.data[0])

    async def get_by_order_id(self, order_id: str) -> Optional[Order]:
        return await self._get_by("order_id", order_id)

    async def get_by_intent_id(self, intent_id: str) -> Optional[Order]:
        return await self._get_by("intent_id", intent_id)

    async def get_by_merchant_order_id(self, merchant_order_id: str) -> Optional[Order]:
        return await self._get_by("merchant_order_id", merchant_order_id)

    async def _get_by(self, column: str, value: str) -> Optional[Order]:
        result = await self.client.table("orders").select("*").eq(
            column, value
        ).limit(1).execute()
        return Order(**result.data[0]) if result.data else None

    async def update_fields(self, order_id: str, fields: dict[str, Any]) -> None:
        fields = {**fields, "updated_at": _now_iso()}
        await self.client.table("orders").update(fields).eq("order_id", order_id).execute()

    async def claim_side_effect(
        self, order_id: str, column: str, claimed_value: str, retryable_value: str
    ) -> bool:
        """Claim a best-effort side effect before running it.

        Succeeds when the column is unset or holds the retryable failure
        value; concurrent claimers see zero updated rows.
        """
        data = {column: claimed_value, "updated_at": _now_iso()}
        result = await self.client.table("orders").update(data).eq(
            "order_id", order_id
        ).is_(column, "null").execute()
        if result.data:
            return True

        result = await self.client.table("orders").update(data).eq(
            "order_id", order_id
        ).eq(column, retryable_value).execute()
        return len(result.data) > 0

    async def transition_status(
        self, order_id: str, from_status: str, to_status: str
    ) -> Optional[Order]:
        """Conditional status update; None if the status changed underneath."""
        result = await self.client.table("orders").update({
            "status": to_status,
            "updated_at": _now_iso(),
        }).eq("order_id", order_id).eq("status", from_status).execute()
        return Order(**result.data[0]) if result.data else None
