"""
Order Materializer

Turns a paid payment intent into exactly one order, decrements stock once,
and runs the best-effort side effects (shipping push, confirmation email).

Exactly-once relies on the storage layer:
- orders.intent_id is UNIQUE, so racing inserts produce one winner and the
  rest fall back to the update path;
- stock is decremented only by the caller that flips
  payment_intents.stock_adjusted from false to true;
- each side effect is claimed with a conditional update before it runs.
"""

import os
import secrets
import string
from dataclasses import dataclass

from checkout.errors import (
    ERROR_MATERIALIZATION_FAILED,
    RECONCILE_MISSING_SHIPPING_ADDRESS,
    RECONCILE_ORDER_INSERT_FAILED,
    MaterializationFailed,
)
from checkout.logging import get_logger, sanitize_id_for_logging
from checkout.payments.constants import EmailStatus, OrderStatus, PaymentGateway, ShippingPushStatus
from checkout.services.database import Database
from checkout.services.domains.contact import missing_address_fields
from checkout.services.models import Order, OrderItem, PaymentIntent
from checkout.services.notifications import EmailNotifier
from checkout.services.repositories import is_duplicate_key_error
from checkout.services.shipping import ShippingPusher

logger = get_logger(__name__)

# Error text stored on orders is truncated to this length
MAX_ERROR_LENGTH = 2000

ORDER_ID_ALPHABET = string.ascii_uppercase + string.digits
ORDER_ID_LENGTH = 8

# Retries when a freshly generated public order id collides
MAX_ORDER_ID_ATTEMPTS = 3

RECONCILE_STOCK_ADJUSTMENT_FAILED = "stock_adjustment_failed"


def generate_order_id(prefix: str | None = None) -> str:
    prefix = os.environ.get("ORDER_ID_PREFIX", "ORD_") if prefix is None else prefix
    return prefix + "".join(secrets.choice(ORDER_ID_ALPHABET) for _ in range(ORDER_ID_LENGTH))


def _truncate(text: str) -> str:
    return text[:MAX_ERROR_LENGTH]


@dataclass
class MaterializationResult:
    order: Order
    created: bool
    stock_decremented: bool


class OrderMaterializer:
    """Exactly-once order creation for paid intents."""

    def __init__(
        self,
        db: Database,
        shipping: ShippingPusher | None = None,
        notifier: EmailNotifier | None = None,
        order_id_prefix: str | None = None,
    ):
        self.db = db
        self.shipping = shipping or ShippingPusher()
        self.notifier = notifier or EmailNotifier()
        self.order_id_prefix = order_id_prefix

    async def materialize(self, intent: PaymentIntent) -> MaterializationResult:
        """
        Create (or refresh) the order for a paid intent.

        Only the order insert is authoritative. Stock and side-effect
        failures are recorded and swallowed.

        Raises:
            MaterializationFailed: order could not be persisted; the intent is
                flagged for reconciliation
        """
        order, created = await self._insert_or_refresh(intent)
        stock_decremented = await self._adjust_stock(intent)

        if missing_address_fields(intent.shipping_address):
            logger.error(
                f"Paid intent {sanitize_id_for_logging(intent.intent_id)} has no usable "
                "shipping address; flagged for reconciliation"
            )
            await self._flag(intent.intent_id, RECONCILE_MISSING_SHIPPING_ADDRESS)
        else:
            await self._push_shipping(order)

        await self._send_confirmation(order)

        refreshed = await self.db.orders.get_by_order_id(order.order_id)
        return MaterializationResult(
            order=refreshed or order,
            created=created,
            stock_decremented=stock_decremented,
        )

    # ==================== STEP 1: ORDER ====================

    def build_order(self, intent: PaymentIntent) -> Order:
        totals = intent.totals
        is_cod = intent.gateway == PaymentGateway.COD.value
        return Order(
            order_id=generate_order_id(self.order_id_prefix),
            intent_id=intent.intent_id,
            merchant_order_id=intent.merchant_order_id,
            items=[
                OrderItem(
                    product_id=line.product_id,
                    variant_id=line.variant_id,
                    variant=line.variant,
                    display_name=line.display_name,
                    unit_price=line.unit_price,
                    quantity=line.quantity,
                )
                for line in totals.lines
            ],
            customer_info=intent.customer_info,
            shipping_address=intent.shipping_address,
            subtotal=totals.subtotal,
            shipping_fee=totals.shipping_fee,
            tax=totals.tax,
            discount_amount=totals.discount_amount,
            total=totals.total,
            total_minor_units=totals.total_minor_units,
            currency=totals.currency,
            coupon_code=totals.coupon_code,
            payment_method=intent.gateway,
            payment_status="pending" if is_cod else "paid",
            gateway_transaction_id=intent.gateway_transaction_id,
            status=OrderStatus.PROCESSING.value,
            paid_at=intent.paid_at,
        )

    async def _insert_or_refresh(self, intent: PaymentIntent) -> tuple[Order, bool]:
        existing = await self.db.orders.get_by_intent_id(intent.intent_id)
        if existing:
            return await self._refresh_payment_fields(existing, intent), False

        for _ in range(MAX_ORDER_ID_ATTEMPTS):
            order = self.build_order(intent)
            try:
                created = await self.db.orders.insert(order)
            except Exception as e:
                if not is_duplicate_key_error(e):
                    raise await self._fail(intent, e) from e
                # Either another channel materialized this intent or the
                # public order id collided
                existing = await self.db.orders.get_by_intent_id(intent.intent_id)
                if existing:
                    logger.info(
                        f"Order for intent {sanitize_id_for_logging(intent.intent_id)} "
                        "already exists; taking update path"
                    )
                    return await self._refresh_payment_fields(existing, intent), False
                continue

            logger.info(
                f"Order {created.order_id} created for intent "
                f"{sanitize_id_for_logging(intent.intent_id)} ({created.total} {created.currency})"
            )
            return created, True

        raise await self._fail(intent, RuntimeError("could not allocate a unique order id"))

    async def _refresh_payment_fields(self, order: Order, intent: PaymentIntent) -> Order:
        fields = {}
        if intent.gateway_transaction_id and intent.gateway_transaction_id != order.gateway_transaction_id:
            fields["gateway_transaction_id"] = intent.gateway_transaction_id
        if intent.paid_at and not order.paid_at:
            fields["paid_at"] = intent.paid_at.isoformat()
        if not fields:
            return order
        await self._record(order.order_id, fields)
        return order.model_copy(update={
            "gateway_transaction_id": intent.gateway_transaction_id or order.gateway_transaction_id,
            "paid_at": intent.paid_at or order.paid_at,
        })

    async def _fail(self, intent: PaymentIntent, error: Exception) -> MaterializationFailed:
        logger.error(
            f"Order insert failed for paid intent {sanitize_id_for_logging(intent.intent_id)}: {error}",
            exc_info=True,
        )
        await self._flag(intent.intent_id, RECONCILE_ORDER_INSERT_FAILED)
        return MaterializationFailed(ERROR_MATERIALIZATION_FAILED, intent_id=intent.intent_id)

    async def _flag(self, intent_id: str, reason: str) -> None:
        try:
            await self.db.intents.flag_reconciliation(intent_id, reason)
        except Exception:
            logger.exception(
                f"Could not flag intent {sanitize_id_for_logging(intent_id)} for reconciliation ({reason})"
            )

    # ==================== STEP 2: STOCK ====================

    async def _adjust_stock(self, intent: PaymentIntent) -> bool:
        if intent.stock_adjusted:
            return False
        if not await self.db.intents.claim_stock_adjustment(intent.intent_id):
            return False

        remaining_by_product: dict[str, int] = {}
        failed = False
        for line in intent.totals.lines:
            try:
                remaining_by_product[line.product_id] = await self.db.products.decrement_stock(
                    line.product_id, line.variant_id, line.quantity
                )
            except Exception as e:
                failed = True
                logger.error(
                    f"Stock decrement failed for product {sanitize_id_for_logging(line.product_id)} "
                    f"(intent {sanitize_id_for_logging(intent.intent_id)}): {e}"
                )

        for product_id, remaining in remaining_by_product.items():
            if remaining > 0:
                continue
            try:
                await self.db.products.set_active(product_id, False)
                logger.info(f"Product {sanitize_id_for_logging(product_id)} sold out; deactivated")
            except Exception as e:
                logger.warning(f"Failed to deactivate product {product_id}: {e}")

        if failed:
            await self._flag(intent.intent_id, RECONCILE_STOCK_ADJUSTMENT_FAILED)
        return True

    # ==================== STEP 3: SHIPPING ====================

    async def _push_shipping(self, order: Order) -> None:
        if order.shipping_push_status == ShippingPushStatus.PUSHED.value:
            return
        if not self.shipping.is_configured():
            if order.shipping_push_status is None:
                await self._record(order.order_id, {"shipping_push_status": ShippingPushStatus.SKIPPED.value})
            return

        try:
            claimed = await self.db.orders.claim_side_effect(
                order.order_id,
                "shipping_push_status",
                ShippingPushStatus.PUSHING.value,
                ShippingPushStatus.PUSH_FAILED.value,
            )
        except Exception as e:
            logger.warning(f"Could not claim shipping push for order {order.order_id}: {e}")
            return
        if not claimed:
            return

        try:
            shipment = await self.shipping.push(order)
        except Exception as e:
            logger.warning(f"Shipping push failed for order {order.order_id}: {e}")
            await self._record(order.order_id, {
                "shipping_push_status": ShippingPushStatus.PUSH_FAILED.value,
                "shipping_error": _truncate(str(e)),
            })
            return

        await self._record(order.order_id, {
            "shipping_push_status": ShippingPushStatus.PUSHED.value,
            "carrier_order_id": shipment.carrier_order_id,
            "tracking_number": shipment.tracking_number,
            "carrier_name": shipment.carrier_name,
            "shipping_error": None,
        })

    # ==================== STEP 4: EMAIL ====================

    async def _send_confirmation(self, order: Order) -> None:
        if order.email_status == EmailStatus.SENT.value:
            return
        recipient = order.customer_info.email
        if not recipient or not self.notifier.is_configured():
            if order.email_status is None:
                await self._record(order.order_id, {"email_status": EmailStatus.SKIPPED.value})
            return

        try:
            claimed = await self.db.orders.claim_side_effect(
                order.order_id,
                "email_status",
                EmailStatus.SENDING.value,
                EmailStatus.FAILED.value,
            )
        except Exception as e:
            logger.warning(f"Could not claim confirmation email for order {order.order_id}: {e}")
            return
        if not claimed:
            return

        try:
            await self.notifier.send_order_confirmation(order, recipient)
        except Exception as e:
            logger.warning(f"Confirmation email failed for order {order.order_id}: {e}")
            await self._record(order.order_id, {
                "email_status": EmailStatus.FAILED.value,
                "email_error": _truncate(str(e)),
            })
            return

        await self._record(order.order_id, {"email_status": EmailStatus.SENT.value, "email_error": None})

    async def _record(self, order_id: str, fields: dict) -> None:
        try:
            await self.db.orders.update_fields(order_id, fields)
        except Exception as e:
            logger.warning(f"Failed to record side-effect state on order {order_id}: {e}")

    async def aclose(self) -> None:
        await self.shipping.aclose()
        await self.notifier.aclose()
