"""Tests for gateway adapters, the token cache and the registry."""
import base64
import hashlib
import hmac
import json
import time

import httpx
import pytest
from fastapi import HTTPException

from checkout.errors import GatewayRejected, GatewayUnavailable, ValidationError
from checkout.payments.constants import ProviderState
from checkout.services.gateways import (
    CashOnDeliveryAdapter,
    PhonePeAdapter,
    RazorpayAdapter,
    build_gateway_registry,
)
from checkout.services.gateways.phonepe import map_state
from checkout.services.token_cache import TokenCache


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def _token_response():
    return httpx.Response(200, json={"access_token": "tok-1", "expires_at": int(time.time()) + 3600})


# ==================== PHONEPE ====================

@pytest.mark.asyncio
async def test_phonepe_create_transaction_caches_token():
    calls = {"token": 0, "pay": 0}
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/v1/oauth/token"):
            calls["token"] += 1
            assert b"grant_type=client_credentials" in request.content
            return _token_response()
        if request.url.path.endswith("/checkout/v2/pay"):
            calls["pay"] += 1
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "orderId": "OMO123",
                "state": "PENDING",
                "redirectUrl": "https://mercury.phonepe.com/transact/OMO123",
            })
        return httpx.Response(404)

    adapter = PhonePeAdapter(http_client=_client(handler), token_cache=TokenCache())

    first = await adapter.create_transaction("txn_1", 34900, "https://shop/return", "https://api/callback")
    await adapter.create_transaction("txn_2", 34900, "https://shop/return", "https://api/callback")

    assert first.provider_state == ProviderState.INITIATED
    assert first.gateway_order_id == "OMO123"
    assert first.redirect_url.endswith("/OMO123")
    assert calls == {"token": 1, "pay": 2}
    assert seen["auth"] == "O-Bearer tok-1"
    assert seen["body"]["amount"] == 34900
    assert seen["body"]["paymentFlow"]["merchantUrls"]["redirectUrl"] == "https://shop/return"


@pytest.mark.asyncio
async def test_phonepe_pay_response_without_redirect_is_rejected():
    def handler(request):
        if request.url.path.endswith("/v1/oauth/token"):
            return _token_response()
        return httpx.Response(200, json={"orderId": "OMO1", "state": "PENDING"})

    adapter = PhonePeAdapter(http_client=_client(handler), token_cache=TokenCache())

    with pytest.raises(GatewayRejected):
        await adapter.create_transaction("txn_1", 100, "r", "c")


@pytest.mark.asyncio
async def test_phonepe_status_maps_completed():
    def handler(request):
        if request.url.path.endswith("/v1/oauth/token"):
            return _token_response()
        assert request.url.path.endswith("/checkout/v2/order/txn_1/status")
        return httpx.Response(200, json={
            "orderId": "OMO1",
            "state": "COMPLETED",
            "paymentDetails": [{"transactionId": "TX-OLD"}, {"transactionId": "TX-1"}],
        })

    adapter = PhonePeAdapter(http_client=_client(handler), token_cache=TokenCache())

    status = await adapter.query_status("txn_1")

    assert status.provider_state == ProviderState.COMPLETED
    assert status.transaction_id == "TX-1"
    assert status.gateway_order_id == "OMO1"


@pytest.mark.asyncio
async def test_phonepe_server_error_is_unavailable():
    def handler(request):
        if request.url.path.endswith("/v1/oauth/token"):
            return _token_response()
        return httpx.Response(503, text="busy")

    adapter = PhonePeAdapter(http_client=_client(handler), token_cache=TokenCache())

    with pytest.raises(GatewayUnavailable):
        await adapter.query_status("txn_1")


@pytest.mark.asyncio
async def test_phonepe_token_fetch_is_retried_on_transport_errors():
    attempts = {"token": 0}

    def handler(request):
        attempts["token"] += 1
        raise httpx.ConnectError("connection refused", request=request)

    adapter = PhonePeAdapter(http_client=_client(handler), token_cache=TokenCache())

    with pytest.raises(GatewayUnavailable):
        await adapter.query_status("txn_1")

    assert attempts["token"] == 3


@pytest.mark.asyncio
async def test_phonepe_client_error_is_rejected():
    def handler(request):
        if request.url.path.endswith("/v1/oauth/token"):
            return _token_response()
        return httpx.Response(400, json={"code": "BAD_REQUEST", "message": "amount invalid"})

    adapter = PhonePeAdapter(http_client=_client(handler), token_cache=TokenCache())

    with pytest.raises(GatewayRejected) as exc_info:
        await adapter.create_transaction("txn_1", 100, "r", "c")

    assert exc_info.value.response == {"code": "BAD_REQUEST", "message": "amount invalid"}
    assert exc_info.value.http_status == 400


@pytest.mark.asyncio
async def test_phonepe_revoked_token_is_refetched_once():
    calls = {"token": 0, "pay": 0}
    seen_auth = []

    def handler(request):
        if request.url.path.endswith("/v1/oauth/token"):
            calls["token"] += 1
            return httpx.Response(200, json={
                "access_token": f"tok-{calls['token']}",
                "expires_at": int(time.time()) + 3600,
            })
        calls["pay"] += 1
        seen_auth.append(request.headers["Authorization"])
        if request.headers["Authorization"] == "O-Bearer tok-1":
            return httpx.Response(401, json={"code": "UNAUTHORIZED"})
        return httpx.Response(200, json={"orderId": "OMO1", "redirectUrl": "https://pay/OMO1"})

    cache = TokenCache()
    adapter = PhonePeAdapter(http_client=_client(handler), token_cache=cache)

    transaction = await adapter.create_transaction("txn_1", 100, "r", "c")

    assert transaction.gateway_order_id == "OMO1"
    assert calls == {"token": 2, "pay": 2}
    assert seen_auth == ["O-Bearer tok-1", "O-Bearer tok-2"]
    assert cache.get("phonepe") == "tok-2"


@pytest.mark.asyncio
async def test_phonepe_persistent_unauthorized_is_rejected_after_one_retry():
    calls = {"token": 0, "status": 0}

    def handler(request):
        if request.url.path.endswith("/v1/oauth/token"):
            calls["token"] += 1
            return _token_response()
        calls["status"] += 1
        return httpx.Response(401, json={"code": "UNAUTHORIZED"})

    adapter = PhonePeAdapter(http_client=_client(handler), token_cache=TokenCache())

    with pytest.raises(GatewayRejected) as exc_info:
        await adapter.query_status("txn_1")

    assert exc_info.value.http_status == 401
    assert calls == {"token": 2, "status": 2}


@pytest.mark.parametrize(
    "state,error_code,expected",
    [
        ("COMPLETED", None, ProviderState.COMPLETED),
        ("FAILED", None, ProviderState.FAILED),
        ("FAILED", "TIMED_OUT", ProviderState.EXPIRED),
        ("PENDING", None, ProviderState.PENDING),
        ("SOMETHING_NEW", None, ProviderState.PENDING),
        (None, None, ProviderState.PENDING),
    ],
)
def test_phonepe_state_mapping(state, error_code, expected):
    assert map_state(state, error_code) == expected


def test_phonepe_webhook_authorization(monkeypatch):
    monkeypatch.setenv("PHONEPE_WEBHOOK_USERNAME", "hook_user")
    monkeypatch.setenv("PHONEPE_WEBHOOK_PASSWORD", "hook_pass")
    adapter = PhonePeAdapter(token_cache=TokenCache())
    expected = hashlib.sha256(b"hook_user:hook_pass").hexdigest()

    assert adapter.verify_webhook({"authorization": expected}, b"{}") is True
    assert adapter.verify_webhook({"Authorization": f"SHA256 {expected}"}, b"{}") is True
    assert adapter.verify_webhook({"authorization": "forged"}, b"{}") is False
    assert adapter.verify_webhook({}, b"{}") is False


def test_phonepe_parse_webhook():
    adapter = PhonePeAdapter(token_cache=TokenCache())

    notification = adapter.parse_webhook({
        "event": "checkout.order.completed",
        "payload": {
            "merchantOrderId": "txn_1",
            "orderId": "OMO1",
            "state": "COMPLETED",
            "paymentDetails": [{"transactionId": "TX-1"}],
        },
    })

    assert notification.provider_state == ProviderState.COMPLETED
    assert notification.merchant_order_id == "txn_1"
    assert notification.gateway_order_id == "OMO1"
    assert notification.transaction_id == "TX-1"


def test_phonepe_legacy_callback_reference():
    adapter = PhonePeAdapter(token_cache=TokenCache())
    encoded = base64.b64encode(json.dumps({
        "success": True,
        "data": {"merchantTransactionId": "txn_legacy", "orderId": "OMO9"},
    }).encode()).decode()

    assert adapter.extract_callback_reference({"response": encoded}) == ("txn_legacy", "OMO9")
    assert adapter.extract_callback_reference({"merchantOrderId": "txn_2"}) == ("txn_2", None)
    assert adapter.extract_callback_reference({"response": "%%%"}) == (None, None)


# ==================== RAZORPAY ====================

@pytest.mark.asyncio
async def test_razorpay_create_order_uses_receipt():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers.get("Authorization", "")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"id": "order_ABC", "status": "created", "amount": 34900})

    adapter = RazorpayAdapter(http_client=_client(handler))

    transaction = await adapter.create_transaction("txn_1", 34900, "r", "c")

    assert transaction.gateway_order_id == "order_ABC"
    assert transaction.redirect_url is None
    assert seen["auth"].startswith("Basic ")
    assert seen["body"]["receipt"] == "txn_1"
    assert seen["body"]["currency"] == "INR"


@pytest.mark.asyncio
async def test_razorpay_paid_order_reports_captured_payment():
    def handler(request):
        if request.url.path.endswith("/orders/order_ABC/payments"):
            return httpx.Response(200, json={"items": [
                {"id": "pay_failed", "status": "failed"},
                {"id": "pay_OK", "status": "captured"},
            ]})
        assert request.url.params["receipt"] == "txn_1"
        return httpx.Response(200, json={"items": [{"id": "order_ABC", "status": "paid"}]})

    adapter = RazorpayAdapter(http_client=_client(handler))

    status = await adapter.query_status("txn_1")

    assert status.provider_state == ProviderState.COMPLETED
    assert status.transaction_id == "pay_OK"
    assert status.gateway_order_id == "order_ABC"


@pytest.mark.asyncio
async def test_razorpay_unknown_receipt_is_pending():
    adapter = RazorpayAdapter(http_client=_client(lambda request: httpx.Response(200, json={"items": []})))

    status = await adapter.query_status("txn_1")

    assert status.provider_state == ProviderState.PENDING


@pytest.mark.asyncio
async def test_razorpay_missing_keys_is_a_configuration_error(monkeypatch):
    monkeypatch.delenv("RAZORPAY_KEY_ID", raising=False)
    adapter = RazorpayAdapter(http_client=_client(lambda request: httpx.Response(200, json={})))

    with pytest.raises(HTTPException) as exc_info:
        await adapter.query_status("txn_1")

    assert exc_info.value.status_code == 500


def test_razorpay_webhook_signature(monkeypatch):
    monkeypatch.setenv("RAZORPAY_WEBHOOK_SECRET", "whsec")
    adapter = RazorpayAdapter()
    body = json.dumps({"event": "order.paid"}).encode()
    signature = hmac.new(b"whsec", body, hashlib.sha256).hexdigest()

    assert adapter.verify_webhook({"x-razorpay-signature": signature}, body) is True
    assert adapter.verify_webhook({"x-razorpay-signature": signature}, body + b" ") is False


@pytest.mark.parametrize(
    "event,expected",
    [
        ("order.paid", ProviderState.COMPLETED),
        ("payment.captured", ProviderState.COMPLETED),
        ("payment.failed", ProviderState.PENDING),
        ("refund.created", ProviderState.PENDING),
    ],
)
def test_razorpay_webhook_events(event, expected):
    notification = RazorpayAdapter().parse_webhook({
        "event": event,
        "payload": {
            "payment": {"entity": {"id": "pay_1", "order_id": "order_ABC"}},
            "order": {"entity": {"id": "order_ABC", "receipt": "txn_1"}},
        },
    })

    assert notification.provider_state == expected
    assert notification.merchant_order_id == "txn_1"
    assert notification.gateway_order_id == "order_ABC"
    assert notification.transaction_id == "pay_1"


def test_razorpay_checkout_signature(monkeypatch):
    monkeypatch.setenv("RAZORPAY_KEY_SECRET", "keysecret")
    adapter = RazorpayAdapter()
    signature = hmac.new(b"keysecret", b"order_ABC|pay_1", hashlib.sha256).hexdigest()
    payload = {
        "razorpay_order_id": "order_ABC",
        "razorpay_payment_id": "pay_1",
        "razorpay_signature": signature,
    }

    assert adapter.verify_callback(payload) is True
    assert adapter.verify_callback({**payload, "razorpay_payment_id": "pay_2"}) is False
    assert adapter.extract_callback_reference(payload) == (None, "order_ABC")


# ==================== COD / REGISTRY / TOKEN CACHE ====================

@pytest.mark.asyncio
async def test_cash_on_delivery_adapter():
    adapter = CashOnDeliveryAdapter()

    transaction = await adapter.create_transaction("txn_1", 34900, "https://shop/return", "c")
    status = await adapter.query_status("txn_1")

    assert transaction.provider_state == ProviderState.INITIATED
    assert status.provider_state == ProviderState.COMPLETED


@pytest.mark.asyncio
async def test_registry_aliases():
    registry = build_gateway_registry()
    try:
        assert registry.get("card").name == "razorpay"
        assert registry.get("UPI").name == "phonepe"
        assert registry.get(None).name == "phonepe"
        assert "cash_on_delivery" in registry
        with pytest.raises(ValidationError):
            registry.get("bitcoin")
    finally:
        await registry.aclose()


def test_token_cache_refreshes_before_expiry():
    now = {"t": 1000.0}
    cache = TokenCache(skew_seconds=60, clock=lambda: now["t"])
    cache.put("phonepe", "tok", expires_at=1100.0)

    assert cache.get("phonepe") == "tok"
    now["t"] = 1045.0
    assert cache.get("phonepe") is None


@pytest.mark.asyncio
async def test_token_cache_get_or_fetch():
    cache = TokenCache()
    fetches = []

    async def fetch():
        fetches.append(1)
        return f"tok-{len(fetches)}", time.time() + 3600

    assert await cache.get_or_fetch("phonepe", fetch) == "tok-1"
    assert await cache.get_or_fetch("phonepe", fetch) == "tok-1"
    cache.invalidate("phonepe")
    assert await cache.get_or_fetch("phonepe", fetch) == "tok-2"
