"""
FastAPI Routers Package

All routers are included by api/index.py.
"""

from checkout.routers.coupons import router as coupons_router
from checkout.routers.errors import register_exception_handlers
from checkout.routers.orders import router as orders_router
from checkout.routers.payments import router as payments_router
from checkout.routers.webhooks import router as webhooks_router

__all__ = [
    "coupons_router",
    "orders_router",
    "payments_router",
    "register_exception_handlers",
    "webhooks_router",
]
