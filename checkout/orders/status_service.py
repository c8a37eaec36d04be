"""
Order Status Management Service

Admin-driven order status transitions after materialization. Cancelling an
order puts its stock back.
"""

from checkout.errors import (
    ERROR_ORDER_INVALID_STATUS,
    ERROR_ORDER_NOT_FOUND,
    InvalidStateTransition,
    OrderNotFound,
    ValidationError,
)
from checkout.logging import get_logger, sanitize_id_for_logging
from checkout.payments.constants import OrderStatus
from checkout.services.database import Database
from checkout.services.models import Order

logger = get_logger(__name__)

# Status transition rules
TRANSITIONS: dict[str, list[str]] = {
    OrderStatus.PENDING.value: [OrderStatus.PROCESSING.value, OrderStatus.CANCELLED.value],
    OrderStatus.PROCESSING.value: [OrderStatus.SHIPPED.value, OrderStatus.CANCELLED.value],
    OrderStatus.SHIPPED.value: [OrderStatus.DELIVERED.value],
    OrderStatus.DELIVERED.value: [],  # Final state
    OrderStatus.CANCELLED.value: [],  # Final state
}


def can_transition(current_status: str, target_status: str) -> tuple[bool, str | None]:
    """
    Check if an order can move from current_status to target_status.

    Returns:
        (can_transition, reason_if_not)
    """
    current_status = current_status.lower()
    target_status = target_status.lower()

    if target_status not in TRANSITIONS:
        return False, f"Unknown status: {target_status}"
    allowed = TRANSITIONS.get(current_status, [])
    if target_status not in allowed:
        return False, f"Cannot transition from {current_status} to {target_status}"
    return True, None


class OrderStatusService:
    """Centralized service for order status management."""

    def __init__(self, db: Database):
        self.db = db

    async def update_status(self, order_id: str, target_status: str) -> Order:
        """
        Apply an admin status change.

        Raises:
            OrderNotFound: unknown order
            ValidationError: unknown target status
            InvalidStateTransition: not allowed from the current status, or the
                status changed concurrently
        """
        target_status = (target_status or "").lower()
        if target_status not in TRANSITIONS:
            raise ValidationError(ERROR_ORDER_INVALID_STATUS, status=target_status)

        order = await self.db.orders.get_by_order_id(order_id)
        if order is None:
            raise OrderNotFound(ERROR_ORDER_NOT_FOUND, order_id=order_id)

        allowed, reason = can_transition(order.status, target_status)
        if not allowed:
            raise InvalidStateTransition(reason, current=order.status, target=target_status)

        updated = await self.db.orders.transition_status(order_id, order.status, target_status)
        if updated is None:
            raise InvalidStateTransition(
                "Order status changed concurrently", current=order.status, target=target_status
            )

        logger.info(f"Order {sanitize_id_for_logging(order_id)}: {order.status} -> {target_status}")

        if target_status == OrderStatus.CANCELLED.value:
            await self._restock(updated)
        return updated

    async def _restock(self, order: Order) -> None:
        """Return cancelled quantities to stock if they were ever taken."""
        intent = await self.db.intents.get(order.intent_id)
        if intent is None or not intent.stock_adjusted:
            return

        totals_by_product: dict[str, int] = {}
        for item in order.items:
            try:
                totals_by_product[item.product_id] = await self.db.products.restore_stock(
                    item.product_id, item.variant_id, item.quantity
                )
            except Exception as e:
                logger.error(
                    f"Restock failed for product {sanitize_id_for_logging(item.product_id)} "
                    f"on cancelled order {order.order_id}: {e}"
                )

        for product_id, total in totals_by_product.items():
            if total > 0:
                await self.db.products.set_active(product_id, True)
