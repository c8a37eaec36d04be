"""Tests for exactly-once order materialization and its side effects."""
import asyncio
import re
from datetime import datetime, timezone

import pytest

from checkout.errors import MaterializationFailed
from checkout.orders import OrderMaterializer
from checkout.orders import materializer as materializer_module
from checkout.services.models import ShippingAddress

from conftest import FakeNotifier, FakeShipping


async def _paid_intent(intent_service, db, customer_info, shipping_address, items=None):
    intent = await intent_service.create_intent(
        items or [{"product_id": "prod-mug", "quantity": 2}], customer_info, shipping_address
    )
    await intent_service.create_gateway_order(intent.intent_id)
    return await db.intents.transition(
        intent.intent_id,
        ["initiated"],
        "paid",
        {"paid_at": datetime.now(timezone.utc).isoformat(), "gateway_transaction_id": "T-42"},
    )


@pytest.mark.asyncio
async def test_materialize_builds_order_from_snapshot(
    materializer, intent_service, db, customer_info, shipping_address,
):
    intent = await _paid_intent(intent_service, db, customer_info, shipping_address)

    result = await materializer.materialize(intent)
    order = result.order

    assert result.created is True
    assert result.stock_decremented is True
    assert re.fullmatch(r"ORD_[A-Z0-9]{8}", order.order_id)
    assert order.intent_id == intent.intent_id
    assert order.merchant_order_id == intent.merchant_order_id
    assert order.status == "processing"
    assert order.payment_method == "phonepe"
    assert order.gateway_transaction_id == "T-42"
    assert order.total == intent.totals.total
    assert [(i.product_id, i.quantity) for i in order.items] == [("prod-mug", 2)]
    assert order.shipping_address.city == "Bengaluru"


@pytest.mark.asyncio
async def test_concurrent_materialization_is_exactly_once(
    materializer, intent_service, db, fake_client, shipping, notifier, customer_info, shipping_address,
):
    intent = await _paid_intent(intent_service, db, customer_info, shipping_address)

    results = await asyncio.gather(*[materializer.materialize(intent) for _ in range(5)])

    assert len(fake_client.rows("orders", intent_id=intent.intent_id)) == 1
    assert sum(1 for r in results if r.created) == 1
    assert sum(1 for r in results if r.stock_decremented) == 1
    assert fake_client.row("products", id="prod-mug")["stock"] == 8
    assert len(shipping.pushed) == 1
    assert len(notifier.sent) == 1


@pytest.mark.asyncio
async def test_variant_stock_is_decremented(materializer, intent_service, db, fake_client, customer_info, shipping_address):
    intent = await _paid_intent(
        intent_service, db, customer_info, shipping_address,
        [{"product_id": "prod-tee", "quantity": 1, "size": "M"}],
    )

    await materializer.materialize(intent)

    assert fake_client.row("product_variants", id="var-tee-m")["stock"] == 0
    assert fake_client.row("product_variants", id="var-tee-s")["stock"] == 5
    assert fake_client.row("products", id="prod-tee")["is_active"] is True


@pytest.mark.asyncio
async def test_sold_out_product_is_deactivated(materializer, intent_service, db, fake_client, customer_info, shipping_address):
    intent = await _paid_intent(
        intent_service, db, customer_info, shipping_address, [{"product_id": "prod-poster", "quantity": 2}]
    )

    await materializer.materialize(intent)

    poster = fake_client.row("products", id="prod-poster")
    assert poster["stock"] == 0
    assert poster["is_active"] is False


@pytest.mark.asyncio
async def test_concurrent_orders_for_last_unit_never_go_negative(
    materializer, intent_service, db, fake_client, customer_info, shipping_address,
):
    items = [{"product_id": "prod-tee", "quantity": 1, "size": "M"}]
    first = await _paid_intent(intent_service, db, customer_info, shipping_address, items)
    second = await _paid_intent(intent_service, db, customer_info, shipping_address, items)

    results = await asyncio.gather(materializer.materialize(first), materializer.materialize(second))

    assert all(r.created for r in results)
    assert len(fake_client.rows("orders")) == 2
    assert fake_client.row("product_variants", id="var-tee-m")["stock"] == 0
    assert fake_client.row("product_variants", id="var-tee-s")["stock"] == 5
    assert fake_client.row("products", id="prod-tee")["is_active"] is True


@pytest.mark.asyncio
async def test_base_stock_sellout_keeps_product_with_variant_stock_active(
    materializer, intent_service, db, fake_client, customer_info, shipping_address,
):
    fake_client.tables["products"].append(
        {"id": "prod-cap", "name": "Cap", "price": "199.00", "stock": 1, "is_active": True}
    )
    fake_client.tables["product_variants"].append(
        {"id": "var-cap-xl", "product_id": "prod-cap", "size": "XL", "price": "219.00", "stock": 3, "position": 0}
    )
    intent = await _paid_intent(
        intent_service, db, customer_info, shipping_address, [{"product_id": "prod-cap", "quantity": 1}]
    )

    await materializer.materialize(intent)

    cap = fake_client.row("products", id="prod-cap")
    assert cap["stock"] == 0
    assert cap["is_active"] is True
    assert fake_client.row("product_variants", id="var-cap-xl")["stock"] == 3


@pytest.mark.asyncio
async def test_shipping_failure_is_recorded_and_retried(
    db, intent_service, notifier, customer_info, shipping_address,
):
    shipping = FakeShipping(error="x" * 5000)
    materializer = OrderMaterializer(db, shipping, notifier)
    intent = await _paid_intent(intent_service, db, customer_info, shipping_address)

    first = await materializer.materialize(intent)

    assert first.order.shipping_push_status == "push_failed"
    assert len(first.order.shipping_error) == materializer_module.MAX_ERROR_LENGTH
    assert first.order.email_status == "sent"

    shipping.error = None
    second = await materializer.materialize(intent)

    assert second.created is False
    assert second.stock_decremented is False
    assert second.order.shipping_push_status == "pushed"
    assert second.order.tracking_number == "AWB123"
    assert second.order.shipping_error is None
    assert len(shipping.pushed) == 2
    assert len(notifier.sent) == 1


@pytest.mark.asyncio
async def test_email_failure_does_not_fail_materialization(db, intent_service, shipping, customer_info, shipping_address):
    notifier = FakeNotifier(error="smtp down")
    materializer = OrderMaterializer(db, shipping, notifier)
    intent = await _paid_intent(intent_service, db, customer_info, shipping_address)

    result = await materializer.materialize(intent)

    assert result.created is True
    assert result.order.email_status == "failed"
    assert result.order.email_error == "smtp down"
    assert result.order.shipping_push_status == "pushed"


@pytest.mark.asyncio
async def test_unconfigured_side_effects_are_skipped(db, intent_service, customer_info, shipping_address):
    shipping = FakeShipping(configured=False)
    notifier = FakeNotifier(configured=False)
    materializer = OrderMaterializer(db, shipping, notifier)
    intent = await _paid_intent(intent_service, db, customer_info, shipping_address)

    result = await materializer.materialize(intent)

    assert result.order.shipping_push_status == "skipped"
    assert result.order.email_status == "skipped"
    assert shipping.pushed == []
    assert notifier.sent == []


@pytest.mark.asyncio
async def test_missing_address_flags_reconciliation(
    materializer, intent_service, db, shipping, customer_info, shipping_address,
):
    intent = await _paid_intent(intent_service, db, customer_info, shipping_address)
    intent = intent.model_copy(update={"shipping_address": ShippingAddress(full_name="Asha Rao")})

    result = await materializer.materialize(intent)

    assert result.created is True
    assert shipping.pushed == []
    stored = await db.intents.get(intent.intent_id)
    assert stored.reconciliation_required is True
    assert stored.reconciliation_reason == "missing_shipping_address"


@pytest.mark.asyncio
async def test_order_insert_failure_flags_reconciliation(
    materializer, intent_service, db, fake_client, customer_info, shipping_address,
):
    intent = await _paid_intent(intent_service, db, customer_info, shipping_address)
    fake_client.failing_tables["orders"] = {"insert"}

    with pytest.raises(MaterializationFailed):
        await materializer.materialize(intent)

    stored = await db.intents.get(intent.intent_id)
    assert stored.status == "paid"
    assert stored.reconciliation_required is True
    assert stored.reconciliation_reason == "order_insert_failed"
    assert stored.stock_adjusted is False
    assert fake_client.row("products", id="prod-mug")["stock"] == 10


@pytest.mark.asyncio
async def test_order_id_collision_is_retried(
    materializer, intent_service, db, fake_client, monkeypatch, customer_info, shipping_address,
):
    intent = await _paid_intent(intent_service, db, customer_info, shipping_address)
    fake_client.tables["orders"].append({"order_id": "ORD_TAKEN001", "intent_id": "pi_other"})
    ids = iter(["ORD_TAKEN001", "ORD_FRESH001"])
    monkeypatch.setattr(materializer_module, "generate_order_id", lambda prefix=None: next(ids))

    result = await materializer.materialize(intent)

    assert result.created is True
    assert result.order.order_id == "ORD_FRESH001"


def test_generate_order_id_prefix():
    assert re.fullmatch(r"SHOP-[A-Z0-9]{8}", materializer_module.generate_order_id("SHOP-"))
