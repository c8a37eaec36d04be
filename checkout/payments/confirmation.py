"""
Payment Confirmation Router

Webhook push, client status poll and legacy callback differ only in how
they learn the provider's state. All three end in ``apply_gateway_state``,
the single transition function for open intents:

- already ``paid``: replay, return the existing order with no side effects
  (an order still missing is materialized, idempotently);
- COMPLETED: ``{pending|initiated} -> paid``, then materialize the order
  (idempotent, so racing channels are safe);
- FAILED / EXPIRED: move to the matching terminal status;
- anything else: still pending, status untouched.

Terminal statuses never move again.
"""

import json
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Mapping

from checkout.errors import (
    ERROR_GATEWAY_UNAVAILABLE,
    ERROR_INTENT_NOT_FOUND,
    ERROR_INVALID_SIGNATURE,
    GatewayRejected,
    GatewayUnavailable,
    IntentNotFound,
    Unauthorized,
    ValidationError,
)
from checkout.logging import get_logger, sanitize_id_for_logging
from checkout.orders.materializer import OrderMaterializer
from checkout.orders.serializer import build_order_payload
from checkout.payments.constants import (
    CLIENT_STATUS,
    OPEN_INTENT_STATES,
    PROVIDER_TERMINAL_STATUS,
    IntentStatus,
    ProviderState,
)
from checkout.services.database import Database
from checkout.services.gateways import GatewayAdapter, GatewayRegistry
from checkout.services.models import Order, PaymentIntent

logger = get_logger(__name__)

RECONCILE_PAID_AFTER_TERMINAL = "paid_after_terminal"

WARNING_UNKNOWN_INTENT = "unknown correlation id; logged for manual reconciliation"


@dataclass
class ConfirmationResult:
    """What a confirmation channel reports back to its caller."""
    state: str  # COMPLETED | PENDING | FAILED | EXPIRED
    intent: PaymentIntent | None = None
    order: Order | None = None
    order_created: bool = False
    warning: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state,
            "intentId": self.intent.intent_id if self.intent else None,
            "merchantOrderId": self.intent.merchant_order_id if self.intent else None,
            "status": self.intent.status if self.intent else None,
            "order": build_order_payload(self.order) if self.order else None,
            "warning": self.warning,
        }


class PaymentConfirmationService:
    """Funnels every confirmation channel into one idempotent transition."""

    def __init__(self, db: Database, gateways: GatewayRegistry, materializer: OrderMaterializer):
        self.db = db
        self.gateways = gateways
        self.materializer = materializer

    # ==================== TRANSITION ====================

    async def apply_gateway_state(
        self,
        intent: PaymentIntent,
        provider_state: ProviderState,
        transaction_id: str | None = None,
        gateway_order_id: str | None = None,
        raw: dict[str, Any] | None = None,
        channel: str = "poll",
    ) -> ConfirmationResult:
        """The one transition function shared by all channels."""
        intent_ref = sanitize_id_for_logging(intent.intent_id)

        if intent.status == IntentStatus.PAID.value:
            logger.info(f"Intent {intent_ref} already paid ({channel} replay)")
            return await self._paid_result(intent)

        debug_fields: dict[str, Any] = {"gateway_response": raw or {}}
        if transaction_id:
            debug_fields["gateway_transaction_id"] = transaction_id
        if gateway_order_id:
            debug_fields["gateway_order_id"] = gateway_order_id

        if intent.status not in OPEN_INTENT_STATES:
            # failed / expired never become paid; money taken anyway needs a human
            await self.db.intents.record_gateway_observation(intent.intent_id, debug_fields)
            if provider_state == ProviderState.COMPLETED:
                logger.error(
                    f"Intent {intent_ref} is {intent.status} but {channel} reports COMPLETED; "
                    "flagged for reconciliation"
                )
                await self.db.intents.flag_reconciliation(intent.intent_id, RECONCILE_PAID_AFTER_TERMINAL)
            return ConfirmationResult(CLIENT_STATUS[intent.status], intent)

        target_status = PROVIDER_TERMINAL_STATUS.get(provider_state.value)
        if target_status is None:
            await self.db.intents.record_gateway_observation(intent.intent_id, debug_fields)
            return ConfirmationResult(ProviderState.PENDING.value, intent)

        fields = dict(debug_fields)
        if target_status == IntentStatus.PAID.value:
            fields["paid_at"] = datetime.now(timezone.utc).isoformat()

        updated = await self.db.intents.transition(
            intent.intent_id, OPEN_INTENT_STATES, target_status, fields
        )
        if updated is not None:
            logger.info(f"Intent {intent_ref}: {intent.status} -> {target_status} via {channel}")
        else:
            # Another channel moved it first; act on what it decided
            updated = await self.db.intents.get(intent.intent_id)
            if updated is None:
                raise IntentNotFound(ERROR_INTENT_NOT_FOUND, intent_id=intent.intent_id)

        if updated.status != IntentStatus.PAID.value:
            if provider_state == ProviderState.COMPLETED:
                logger.error(
                    f"Intent {intent_ref} became {updated.status} concurrently but {channel} "
                    "reports COMPLETED; flagged for reconciliation"
                )
                await self.db.intents.flag_reconciliation(intent.intent_id, RECONCILE_PAID_AFTER_TERMINAL)
            return ConfirmationResult(CLIENT_STATUS[updated.status], updated)

        # Losers of the status race still run this: the order insert and the
        # stock claim are the real idempotency guards
        result = await self.materializer.materialize(updated)
        return ConfirmationResult(
            ProviderState.COMPLETED.value,
            updated,
            result.order,
            order_created=result.created,
        )

    # ==================== CHANNEL (a): WEBHOOK ====================

    async def handle_webhook(
        self, gateway: str, headers: Mapping[str, str], raw_body: bytes
    ) -> ConfirmationResult:
        """
        Verify and apply a provider push notification.

        Raises:
            Unauthorized: signature mismatch (nothing is written)
            ValidationError: body is not JSON
            IntentNotFound: correlation id unknown
        """
        adapter = self.gateways.get(gateway)
        if not adapter.verify_webhook(headers, raw_body):
            logger.warning(f"{adapter.name} webhook rejected: bad signature")
            raise Unauthorized(ERROR_INVALID_SIGNATURE)

        try:
            payload = json.loads(raw_body.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ValidationError("Webhook body is not valid JSON") from e
        if not isinstance(payload, dict):
            raise ValidationError("Webhook body is not a JSON object")

        notification = adapter.parse_webhook(payload)
        intent = await self._resolve(notification.merchant_order_id, notification.gateway_order_id)
        if intent is None:
            logger.warning(
                f"{adapter.name} webhook for unknown order "
                f"{sanitize_id_for_logging(notification.merchant_order_id or notification.gateway_order_id)}"
            )
            raise IntentNotFound(
                ERROR_INTENT_NOT_FOUND,
                merchant_order_id=notification.merchant_order_id,
            )

        return await self.apply_gateway_state(
            intent,
            notification.provider_state,
            transaction_id=notification.transaction_id,
            gateway_order_id=notification.gateway_order_id,
            raw=notification.raw,
            channel="webhook",
        )

    # ==================== CHANNEL (b): CLIENT POLL ====================

    async def check_status(
        self, intent_id: str | None = None, merchant_order_id: str | None = None
    ) -> ConfirmationResult:
        """
        Client-driven status check by intent id or merchant order id.

        Raises:
            ValidationError: neither id supplied
            IntentNotFound: no such intent
            GatewayUnavailable: provider could not be asked; retry later
        """
        if not intent_id and not merchant_order_id:
            raise ValidationError("intent_id or merchant_order_id is required")

        intent = None
        if intent_id:
            intent = await self.db.intents.get(intent_id)
        if intent is None and merchant_order_id:
            intent = await self.db.intents.get_by_merchant_order_id(merchant_order_id)
        if intent is None:
            raise IntentNotFound(ERROR_INTENT_NOT_FOUND, intent_id=intent_id)

        return await self._poll(intent, channel="poll")

    # ==================== CHANNEL (c): LEGACY CALLBACK ====================

    async def handle_callback(self, gateway: str, payload: dict[str, Any]) -> ConfirmationResult:
        """
        Legacy/client callback. The body only identifies the intent; the
        state comes from a fresh status query.

        Unknown intents get a success-with-warning result so the sender stops
        retrying.
        """
        adapter = self.gateways.get(gateway)
        if not adapter.verify_callback(payload):
            logger.warning(f"{adapter.name} callback rejected: bad signature")
            raise Unauthorized(ERROR_INVALID_SIGNATURE)

        merchant_order_id, gateway_order_id = adapter.extract_callback_reference(payload)
        intent = await self._resolve(merchant_order_id, gateway_order_id)
        if intent is None:
            logger.warning(
                f"{adapter.name} callback for unknown order "
                f"{sanitize_id_for_logging(merchant_order_id or gateway_order_id)}"
            )
            return ConfirmationResult(ProviderState.PENDING.value, warning=WARNING_UNKNOWN_INTENT)

        return await self._poll(intent, channel="callback")

    # ==================== RECONCILIATION (cron) ====================

    async def poll_initiated(self, older_than: timedelta, limit: int = 50) -> dict[str, int]:
        """Poll the gateway for initiated intents nobody has confirmed yet."""
        cutoff = datetime.now(timezone.utc) - older_than
        intents = await self.db.intents.list_by_status(
            IntentStatus.INITIATED.value, created_before=cutoff, limit=limit
        )
        summary = {"checked": 0, "completed": 0, "failed": 0, "pending": 0, "errors": 0}
        for intent in intents:
            summary["checked"] += 1
            try:
                result = await self._poll(intent, channel="cron")
            except (GatewayUnavailable, GatewayRejected):
                summary["errors"] += 1
                continue
            except Exception:
                logger.exception(f"Reconciliation poll failed for {sanitize_id_for_logging(intent.intent_id)}")
                summary["errors"] += 1
                continue
            if result.state == ProviderState.COMPLETED.value:
                summary["completed"] += 1
            elif result.state == ProviderState.PENDING.value:
                summary["pending"] += 1
            else:
                summary["failed"] += 1
        return summary

    async def expire_stale(self, now: datetime | None = None, limit: int = 100) -> dict[str, int]:
        """
        Expire open intents past ``expires_at``.

        Pending intents never reached a gateway and expire directly. Initiated
        ones are polled first; only those still not completed are expired.
        """
        now = now or datetime.now(timezone.utc)
        summary = {"expired": 0, "completed": 0, "failed": 0, "skipped": 0}

        for intent in await self.db.intents.list_by_status(
            IntentStatus.PENDING.value, expires_before=now, limit=limit
        ):
            if await self.db.intents.transition(
                intent.intent_id, [IntentStatus.PENDING.value], IntentStatus.EXPIRED.value
            ):
                summary["expired"] += 1

        for intent in await self.db.intents.list_by_status(
            IntentStatus.INITIATED.value, expires_before=now, limit=limit
        ):
            try:
                result = await self._poll(intent, channel="expiry")
            except (GatewayUnavailable, GatewayRejected):
                summary["skipped"] += 1
                continue

            if result.state == ProviderState.COMPLETED.value:
                summary["completed"] += 1
            elif result.state == ProviderState.PENDING.value:
                expired = await self.db.intents.transition(
                    intent.intent_id, [IntentStatus.INITIATED.value], IntentStatus.EXPIRED.value
                )
                if expired:
                    logger.info(f"Intent {sanitize_id_for_logging(intent.intent_id)} expired unpaid")
                    summary["expired"] += 1
            elif result.state == ProviderState.FAILED.value:
                summary["failed"] += 1
            else:
                summary["expired"] += 1
        return summary

    # ==================== HELPERS ====================

    async def _resolve(
        self, merchant_order_id: str | None, gateway_order_id: str | None
    ) -> PaymentIntent | None:
        intent = None
        if merchant_order_id:
            intent = await self.db.intents.get_by_merchant_order_id(merchant_order_id)
        if intent is None and gateway_order_id:
            intent = await self.db.intents.get_by_gateway_order_id(gateway_order_id)
        return intent

    async def _paid_result(self, intent: PaymentIntent) -> ConfirmationResult:
        """Replay of a paid intent: report the existing order, nothing else."""
        order = await self.db.orders.get_by_intent_id(intent.intent_id)
        if order is not None:
            return ConfirmationResult(ProviderState.COMPLETED.value, intent, order)

        # Paid with no order: another channel is mid-materialization or an
        # earlier insert failed. Materializing again is idempotent.
        logger.warning(f"Paid intent {sanitize_id_for_logging(intent.intent_id)} has no order yet")
        result = await self.materializer.materialize(intent)
        return ConfirmationResult(
            ProviderState.COMPLETED.value, intent, result.order, order_created=result.created
        )

    async def _poll(self, intent: PaymentIntent, channel: str) -> ConfirmationResult:
        """Query the provider for an intent and apply the answer."""
        if intent.status == IntentStatus.PAID.value:
            return await self._paid_result(intent)
        if intent.status not in OPEN_INTENT_STATES:
            return ConfirmationResult(CLIENT_STATUS[intent.status], intent)
        if not intent.merchant_order_id:
            # No gateway transaction exists yet
            return ConfirmationResult(ProviderState.PENDING.value, intent)

        adapter: GatewayAdapter = self.gateways.get(intent.gateway)
        try:
            status = await adapter.query_status(intent.merchant_order_id)
        except (GatewayUnavailable, GatewayRejected) as e:
            logger.warning(
                f"{adapter.name} status query failed for {sanitize_id_for_logging(intent.intent_id)} "
                f"({channel}): {e.message}"
            )
            raise GatewayUnavailable(ERROR_GATEWAY_UNAVAILABLE, gateway=adapter.name) from e

        return await self.apply_gateway_state(
            intent,
            status.provider_state,
            transaction_id=status.transaction_id,
            gateway_order_id=status.gateway_order_id,
            raw=status.raw,
            channel=channel,
        )
