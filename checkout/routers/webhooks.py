"""
Webhooks Router

Gateway push notifications. Signatures are verified over the raw body
before anything is parsed or written.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from checkout.errors import CheckoutError
from checkout.logging import get_logger, sanitize_string_for_logging

from .deps import get_confirmation_service

logger = get_logger(__name__)

router = APIRouter(tags=["webhooks"])


@router.post("/api/webhooks/{gateway}")
async def gateway_webhook(gateway: str, request: Request, service=Depends(get_confirmation_service)):
    """
    Handle a gateway webhook.

    Returns ``{"ok": true}`` once the notification is applied (replays
    included); error statuses make the gateway retry.
    """
    raw_body = await request.body()
    logger.info(f"Webhook received from {sanitize_string_for_logging(gateway)} ({len(raw_body)} bytes)")

    try:
        result = await service.handle_webhook(gateway, request.headers, raw_body)
    except CheckoutError as e:
        return JSONResponse(
            {"ok": False, "error": e.code, "message": e.message},
            status_code=e.status_code,
        )

    return JSONResponse({
        "ok": True,
        "state": result.state,
        "intentId": result.intent.intent_id if result.intent else None,
        "orderId": result.order.order_id if result.order else None,
    })
