"""
Orders Router

Stock pre-check, order lookup and admin status transitions.
"""

from fastapi import APIRouter, Depends

from checkout.auth import verify_admin_key
from checkout.errors import ERROR_ORDER_NOT_FOUND, OrderNotFound
from checkout.orders.serializer import build_order_payload
from checkout.services.database import Database
from checkout.services.domains import TotalsCalculator, parse_cart_lines

from .deps import get_db, get_order_status_service
from .models import CheckStockRequest, UpdateOrderStatusRequest

router = APIRouter(prefix="/api/orders", tags=["orders"])


@router.post("/check-stock")
async def check_stock(request: CheckStockRequest, db: Database = Depends(get_db)):
    """Check cart quantities against live stock. Nothing is reserved."""
    lines = parse_cart_lines(request.items)
    await TotalsCalculator(db.catalog).check_stock(lines)
    return {"ok": True}


@router.get("/{order_id}")
async def get_order(order_id: str, db: Database = Depends(get_db)):
    order = await db.orders.get_by_order_id(order_id)
    if order is None:
        raise OrderNotFound(ERROR_ORDER_NOT_FOUND, order_id=order_id)
    return build_order_payload(order)


@router.patch("/{order_id}/status", dependencies=[Depends(verify_admin_key)])
async def update_order_status(
    order_id: str,
    request: UpdateOrderStatusRequest,
    service=Depends(get_order_status_service),
):
    order = await service.update_status(order_id, request.status)
    return build_order_payload(order)
