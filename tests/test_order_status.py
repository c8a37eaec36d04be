"""Tests for admin order status transitions."""
from datetime import datetime, timezone

import pytest

from checkout.errors import InvalidStateTransition, OrderNotFound, ValidationError
from checkout.orders import OrderStatusService, can_transition


@pytest.fixture
def status_service(db):
    return OrderStatusService(db)


async def _order(materializer, intent_service, db, customer_info, shipping_address, items):
    intent = await intent_service.create_intent(items, customer_info, shipping_address)
    await intent_service.create_gateway_order(intent.intent_id)
    paid = await db.intents.transition(
        intent.intent_id, ["initiated"], "paid", {"paid_at": datetime.now(timezone.utc).isoformat()}
    )
    result = await materializer.materialize(paid)
    return result.order


@pytest.mark.parametrize(
    "current,target,allowed",
    [
        ("pending", "processing", True),
        ("pending", "cancelled", True),
        ("processing", "shipped", True),
        ("processing", "cancelled", True),
        ("shipped", "delivered", True),
        ("shipped", "cancelled", False),
        ("delivered", "cancelled", False),
        ("cancelled", "processing", False),
        ("processing", "refunded", False),
    ],
)
def test_transition_table(current, target, allowed):
    ok, reason = can_transition(current, target)

    assert ok is allowed
    assert (reason is None) is allowed


@pytest.mark.asyncio
async def test_ship_then_deliver(status_service, materializer, intent_service, db, customer_info, shipping_address):
    order = await _order(
        materializer, intent_service, db, customer_info, shipping_address,
        [{"product_id": "prod-mug", "quantity": 1}],
    )

    shipped = await status_service.update_status(order.order_id, "SHIPPED")
    delivered = await status_service.update_status(order.order_id, "delivered")

    assert shipped.status == "shipped"
    assert delivered.status == "delivered"
    with pytest.raises(InvalidStateTransition):
        await status_service.update_status(order.order_id, "cancelled")


@pytest.mark.asyncio
async def test_cancel_restores_stock_and_reactivates(
    status_service, materializer, intent_service, db, fake_client, customer_info, shipping_address,
):
    order = await _order(
        materializer, intent_service, db, customer_info, shipping_address,
        [{"product_id": "prod-poster", "quantity": 2}],
    )
    assert fake_client.row("products", id="prod-poster")["is_active"] is False

    cancelled = await status_service.update_status(order.order_id, "cancelled")

    assert cancelled.status == "cancelled"
    poster = fake_client.row("products", id="prod-poster")
    assert poster["stock"] == 2
    assert poster["is_active"] is True


@pytest.mark.asyncio
async def test_cancel_without_stock_adjustment_does_not_restock(
    status_service, materializer, intent_service, db, fake_client, customer_info, shipping_address,
):
    order = await _order(
        materializer, intent_service, db, customer_info, shipping_address,
        [{"product_id": "prod-mug", "quantity": 1}],
    )
    fake_client.row("payment_intents", intent_id=order.intent_id)["stock_adjusted"] = False

    await status_service.update_status(order.order_id, "cancelled")

    assert fake_client.row("products", id="prod-mug")["stock"] == 9


@pytest.mark.asyncio
async def test_unknown_status(status_service, materializer, intent_service, db, customer_info, shipping_address):
    order = await _order(
        materializer, intent_service, db, customer_info, shipping_address,
        [{"product_id": "prod-mug", "quantity": 1}],
    )

    with pytest.raises(ValidationError):
        await status_service.update_status(order.order_id, "lost")


@pytest.mark.asyncio
async def test_unknown_order(status_service):
    with pytest.raises(OrderNotFound):
        await status_service.update_status("ORD_MISSING", "shipped")
