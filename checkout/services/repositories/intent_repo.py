"""Payment Intent Repository - intents and their append-only attempt log.

Every status write is a conditional update; the returned rows tell the
caller whether its write won.
"""
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional

from checkout.services.models import PaymentAttempt, PaymentIntent

from .base import BaseRepository


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class IntentRepository(BaseRepository):
    """Payment intent database operations."""

    async def create(self, intent: PaymentIntent) -> PaymentIntent:
        data = intent.model_dump(mode="json", exclude_none=True)
        data["created_at"] = data["updated_at"] = _now_iso()
        result = await self.client.table("payment_intents").insert(data).execute()
        return PaymentIntent(**result.data[0])

    async def get(self, intent_id: str) -> Optional[PaymentIntent]:
        return await self._get_by("intent_id", intent_id)

    async def get_by_merchant_order_id(self, merchant_order_id: str) -> Optional[PaymentIntent]:
        return await self._get_by("merchant_order_id", merchant_order_id)

    async def get_by_gateway_order_id(self, gateway_order_id: str) -> Optional[PaymentIntent]:
        return await self._get_by("gateway_order_id", gateway_order_id)

    async def _get_by(self, column: str, value: str) -> Optional[PaymentIntent]:
        result = await self.client.table("payment_intents").select("*").eq(
            column, value
        ).limit(1).execute()
        return PaymentIntent(**result.data[0]) if result.data else None

    async def assign_merchant_order_id(self, intent_id: str, merchant_order_id: str) -> bool:
        """Set merchant_order_id only if none is assigned yet (atomic)."""
        result = await self.client.table("payment_intents").update({
            "merchant_order_id": merchant_order_id,
            "updated_at": _now_iso(),
        }).eq("intent_id", intent_id).is_("merchant_order_id", "null").execute()
        return len(result.data) > 0

    async def transition(
        self,
        intent_id: str,
        from_states: Iterable[str],
        to_status: str,
        fields: dict[str, Any] | None = None,
    ) -> Optional[PaymentIntent]:
        """Move status forward only if it is currently one of from_states.

        Returns the updated intent, or None if another writer got there first.
        """
        data = {**(fields or {}), "status": to_status, "updated_at": _now_iso()}
        result = await self.client.table("payment_intents").update(data).eq(
            "intent_id", intent_id
        ).in_("status", list(from_states)).execute()
        return PaymentIntent(**result.data[0]) if result.data else None

    async def record_gateway_observation(self, intent_id: str, fields: dict[str, Any]) -> None:
        """Overwrite non-authoritative gateway debug fields (never status)."""
        fields = {k: v for k, v in fields.items() if k != "status"}
        fields["updated_at"] = _now_iso()
        await self.client.table("payment_intents").update(fields).eq(
            "intent_id", intent_id
        ).execute()

    async def claim_stock_adjustment(self, intent_id: str) -> bool:
        """Flip stock_adjusted false -> true. Only the winner decrements stock."""
        result = await self.client.table("payment_intents").update({
            "stock_adjusted": True,
            "updated_at": _now_iso(),
        }).eq("intent_id", intent_id).eq("stock_adjusted", False).execute()
        return len(result.data) > 0

    async def flag_reconciliation(self, intent_id: str, reason: str) -> None:
        await self.client.table("payment_intents").update({
            "reconciliation_required": True,
            "reconciliation_reason": reason,
            "updated_at": _now_iso(),
        }).eq("intent_id", intent_id).execute()

    async def list_by_status(
        self,
        status: str,
        created_before: datetime | None = None,
        expires_before: datetime | None = None,
        limit: int = 50,
    ) -> List[PaymentIntent]:
        query = self.client.table("payment_intents").select("*").eq("status", status)
        if created_before:
            query = query.lt("created_at", created_before.isoformat())
        if expires_before:
            query = query.lt("expires_at", expires_before.isoformat())
        result = await query.order("created_at").limit(limit).execute()
        return [PaymentIntent(**row) for row in result.data]

    # ==================== ATTEMPTS (append-only) ====================

    async def add_attempt(self, attempt: PaymentAttempt) -> PaymentAttempt:
        data = attempt.model_dump(mode="json", exclude_none=True)
        data["created_at"] = _now_iso()
        result = await self.client.table("payment_attempts").insert(data).execute()
        return PaymentAttempt(**result.data[0])

    async def list_attempts(self, intent_id: str) -> List[PaymentAttempt]:
        """Attempts in insertion order."""
        result = await self.client.table("payment_attempts").select("*").eq(
            "intent_id", intent_id
        ).order("id").execute()
        return [PaymentAttempt(**row) for row in result.data]
