"""
Payments Router

Intent creation, gateway order creation and the client-facing confirmation
channels (status poll, legacy callback, Razorpay checkout verification).
"""

import json
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query, Request

from checkout.logging import get_logger
from checkout.orders.serializer import build_intent_payload, build_totals_payload
from checkout.payments.constants import PaymentGateway

from .deps import get_confirmation_service, get_intent_service
from .models import CreateIntentRequest

logger = get_logger(__name__)

router = APIRouter(prefix="/api/payments", tags=["payments"])


async def _read_payload(request: Request) -> dict[str, Any]:
    raw_body = await request.body()
    if not raw_body:
        return {}
    try:
        data = json.loads(raw_body.decode("utf-8"))
    except (json.JSONDecodeError, UnicodeDecodeError):
        form_data = await request.form()
        return dict(form_data)
    return data if isinstance(data, dict) else {}


# ==================== INTENTS ====================

@router.post("/intents", status_code=201)
async def create_intent(request: CreateIntentRequest, service=Depends(get_intent_service)):
    """Create a pending payment intent for a (possibly guest) checkout."""
    intent = await service.create_intent(
        request.items,
        request.customer_info,
        request.shipping_address,
        coupon_code=request.coupon_code,
        gateway=request.gateway,
    )
    return {
        "intentId": intent.intent_id,
        "status": intent.status,
        "gateway": intent.gateway,
        "totals": build_totals_payload(intent.totals),
        "expiresAt": intent.expires_at.isoformat() if intent.expires_at else None,
    }


@router.get("/intents/{intent_id}")
async def get_intent(intent_id: str, service=Depends(get_intent_service)):
    intent = await service.get_intent(intent_id)
    return build_intent_payload(intent)


@router.post("/intents/{intent_id}/gateway-order")
async def create_gateway_order(intent_id: str, service=Depends(get_intent_service)):
    """Create the remote transaction and hand back where to send the payer."""
    result = await service.create_gateway_order(intent_id)
    return {
        "intentId": result.intent.intent_id,
        "merchantOrderId": result.intent.merchant_order_id,
        "status": result.intent.status,
        "gateway": result.intent.gateway,
        "gatewayOrderId": result.gateway_order_id,
        "redirectUrl": result.redirect_url,
        "attemptId": result.attempt.attempt_id,
        "amountMinorUnits": result.attempt.amount_minor_units,
    }


# ==================== CONFIRMATION ====================

@router.get("/status")
async def payment_status(
    intent_id: Optional[str] = Query(None),
    merchant_order_id: Optional[str] = Query(None),
    service=Depends(get_confirmation_service),
):
    """Ask the gateway for the current state and apply it."""
    result = await service.check_status(intent_id=intent_id, merchant_order_id=merchant_order_id)
    return result.to_dict()


@router.post("/callback/{gateway}")
async def payment_callback(gateway: str, request: Request, service=Depends(get_confirmation_service)):
    """Legacy callback. The body only identifies the intent; JSON or form-data."""
    result = await service.handle_callback(gateway, await _read_payload(request))
    return result.to_dict()


@router.post("/razorpay/verify")
async def razorpay_verify(
    payload: dict[str, Any] = Body(...),
    service=Depends(get_confirmation_service),
):
    """Razorpay Checkout handler: verify the signature, then re-query the order."""
    result = await service.handle_callback(PaymentGateway.RAZORPAY.value, payload)
    return result.to_dict()
