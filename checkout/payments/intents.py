"""
Payment Intent Service

Creates intents from a cart (guest callers allowed) and moves them from
``pending`` to ``initiated`` by creating the remote gateway transaction.
"""

import os
import secrets
import string
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from checkout.errors import (
    ERROR_AMOUNT_MISMATCH,
    ERROR_INTENT_NOT_FOUND,
    ERROR_INTENT_NOT_PAYABLE,
    AmountMismatch,
    GatewayRejected,
    GatewayUnavailable,
    IntentNotFound,
    InvalidStateTransition,
)
from checkout.logging import get_logger, sanitize_id_for_logging
from checkout.payments.constants import AttemptStatus, IntentStatus
from checkout.services.database import Database
from checkout.services.domains import (
    TotalsCalculator,
    normalize_contact,
    parse_cart_lines,
    require_complete_address,
)
from checkout.services.gateways import GatewayRegistry
from checkout.services.models import PaymentAttempt, PaymentIntent

logger = get_logger(__name__)

ID_ALPHABET = string.ascii_letters + string.digits
INTENT_ID_LENGTH = 12
ATTEMPT_ID_LENGTH = 8
DEFAULT_INTENT_TTL_MINUTES = 30


def _random_id(prefix: str, length: int) -> str:
    return prefix + "".join(secrets.choice(ID_ALPHABET) for _ in range(length))


def generate_intent_id() -> str:
    return _random_id("pi_", INTENT_ID_LENGTH)


def generate_attempt_id() -> str:
    return _random_id("att_", ATTEMPT_ID_LENGTH)


def generate_merchant_order_id(intent_id: str) -> str:
    return f"txn_{intent_id}_{int(time.time() * 1000)}"


@dataclass
class GatewayOrder:
    """Outcome of create_gateway_order."""
    intent: PaymentIntent
    attempt: PaymentAttempt
    redirect_url: str | None
    gateway_order_id: str | None
    raw: dict[str, Any]


class PaymentIntentService:
    """Intent creation and the pending -> initiated transition."""

    def __init__(
        self,
        db: Database,
        gateways: GatewayRegistry,
        calculator: TotalsCalculator | None = None,
    ):
        self.db = db
        self.gateways = gateways
        self.calculator = calculator or TotalsCalculator(db.catalog)
        self.ttl = timedelta(minutes=int(os.environ.get("INTENT_TTL_MINUTES", DEFAULT_INTENT_TTL_MINUTES)))
        self.public_base_url = os.environ.get("PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/")
        self.frontend_url = os.environ.get("FRONTEND_URL", "http://localhost:3000").rstrip("/")

    async def create_intent(
        self,
        items: Any,
        customer_info: dict[str, Any] | None,
        shipping_address: dict[str, Any] | None,
        coupon_code: str | None = None,
        gateway: str | None = None,
        now: datetime | None = None,
    ) -> PaymentIntent:
        """
        Validate the cart and contact data, price it, and persist a pending intent.

        Input is fully validated before any catalog read or write.

        Raises:
            ValidationError / IncompleteShippingAddress: bad input
            ProductNotFound / VariantNotFound / InsufficientStock / InvalidAmount
        """
        lines = parse_cart_lines(items)
        customer, address = normalize_contact(customer_info, shipping_address)
        require_complete_address(address)
        adapter = self.gateways.get(gateway)

        now = now or datetime.now(timezone.utc)
        totals = await self.calculator.compute(lines, coupon_code, now)

        intent = PaymentIntent(
            intent_id=generate_intent_id(),
            gateway=adapter.name,
            order_items=lines,
            customer_info=customer,
            shipping_address=address,
            totals=totals,
            coupon_code=totals.coupon_code,
            status=IntentStatus.PENDING.value,
            stock_adjusted=False,
            expires_at=now + self.ttl,
        )
        created = await self.db.intents.create(intent)
        logger.info(
            f"Intent {created.intent_id} created: {len(lines)} line(s), "
            f"{totals.total} {totals.currency} via {created.gateway}"
        )
        return created

    async def get_intent(self, intent_id: str) -> PaymentIntent:
        intent = await self.db.intents.get(intent_id)
        if intent is None:
            raise IntentNotFound(ERROR_INTENT_NOT_FOUND, intent_id=intent_id)
        return intent

    async def create_gateway_order(self, intent_id: str, now: datetime | None = None) -> GatewayOrder:
        """
        Create the remote transaction for a pending intent.

        Totals are recomputed from the live catalog first; a different
        minor-unit amount fails the intent. Every remote call appends an
        attempt, whatever its outcome. An intent that is already initiated
        gets its existing transaction back: the payer may be on the gateway
        page, so it is neither repriced nor sent to the provider again.

        Raises:
            IntentNotFound, InvalidStateTransition
            AmountMismatch: the intent is marked failed
            GatewayUnavailable / GatewayRejected: intent left as it was
        """
        intent = await self.get_intent(intent_id)
        if intent.status == IntentStatus.INITIATED.value:
            return await self._existing_gateway_order(intent)
        if intent.status != IntentStatus.PENDING.value:
            raise InvalidStateTransition(ERROR_INTENT_NOT_PAYABLE, status=intent.status)

        recomputed = await self.calculator.compute(intent.order_items, intent.coupon_code, now)
        expected = intent.totals.total_minor_units
        if recomputed.total_minor_units != expected:
            await self.db.intents.transition(
                intent_id,
                [IntentStatus.PENDING.value],
                IntentStatus.FAILED.value,
                {"gateway_response": {
                    "reason": "amount_mismatch",
                    "expected_minor_units": expected,
                    "actual_minor_units": recomputed.total_minor_units,
                }},
            )
            logger.warning(
                f"Intent {sanitize_id_for_logging(intent_id)} failed: amount drifted "
                f"{expected} -> {recomputed.total_minor_units}"
            )
            raise AmountMismatch(
                ERROR_AMOUNT_MISMATCH,
                expected_minor_units=expected,
                actual_minor_units=recomputed.total_minor_units,
            )

        merchant_order_id = await self._ensure_merchant_order_id(intent)
        adapter = self.gateways.get(intent.gateway)
        redirect_url = f"{self.frontend_url}/payment/status?intentId={intent_id}"
        callback_url = f"{self.public_base_url}/api/payments/callback/{adapter.name}"

        try:
            transaction = await adapter.create_transaction(
                merchant_order_id, expected, redirect_url, callback_url
            )
        except GatewayUnavailable as e:
            await self._record_attempt(intent_id, expected, AttemptStatus.ERROR, {"error": e.message})
            raise
        except GatewayRejected as e:
            response = e.response if isinstance(e.response, dict) else {"error": e.message}
            await self._record_attempt(intent_id, expected, AttemptStatus.REJECTED, response)
            raise

        attempt = await self._record_attempt(intent_id, expected, AttemptStatus.INITIATED, transaction.raw)
        updated = await self.db.intents.transition(
            intent_id,
            [IntentStatus.PENDING.value],
            IntentStatus.INITIATED.value,
            {
                "gateway_order_id": transaction.gateway_order_id,
                "redirect_url": transaction.redirect_url,
                "gateway_response": transaction.raw,
            },
        )
        if updated is None:
            # A concurrent gateway-order call or a confirmation channel moved it first
            updated = await self.get_intent(intent_id)
        else:
            logger.info(f"Intent {sanitize_id_for_logging(intent_id)} initiated with {adapter.name}")

        return GatewayOrder(
            intent=updated,
            attempt=attempt,
            redirect_url=transaction.redirect_url,
            gateway_order_id=transaction.gateway_order_id,
            raw=transaction.raw,
        )

    async def _existing_gateway_order(self, intent: PaymentIntent) -> GatewayOrder:
        attempts = [
            a for a in await self.db.intents.list_attempts(intent.intent_id)
            if a.attempt_status == AttemptStatus.INITIATED.value
        ]
        if not attempts:
            raise InvalidStateTransition(ERROR_INTENT_NOT_PAYABLE, status=intent.status)
        logger.info(
            f"Intent {sanitize_id_for_logging(intent.intent_id)} already initiated; "
            "returning its gateway order"
        )
        return GatewayOrder(
            intent=intent,
            attempt=attempts[-1],
            redirect_url=intent.redirect_url,
            gateway_order_id=intent.gateway_order_id,
            raw=intent.gateway_response or {},
        )

    async def _ensure_merchant_order_id(self, intent: PaymentIntent) -> str:
        """Assign the gateway correlation id once; later calls reuse it."""
        if intent.merchant_order_id:
            return intent.merchant_order_id

        candidate = generate_merchant_order_id(intent.intent_id)
        if await self.db.intents.assign_merchant_order_id(intent.intent_id, candidate):
            return candidate

        current = await self.get_intent(intent.intent_id)
        return current.merchant_order_id or candidate

    async def _record_attempt(
        self,
        intent_id: str,
        amount_minor_units: int,
        status: AttemptStatus,
        response: dict[str, Any] | None,
    ) -> PaymentAttempt:
        return await self.db.intents.add_attempt(PaymentAttempt(
            attempt_id=generate_attempt_id(),
            intent_id=intent_id,
            amount_minor_units=amount_minor_units,
            provider_response=response,
            attempt_status=status.value,
        ))
