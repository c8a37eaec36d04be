"""
Shared Dependencies for Routers

Lazy-loaded singletons (HTTP clients live as long as the process) and the
FastAPI dependency providers built on them.
"""

from typing import TYPE_CHECKING, Optional

from fastapi import Depends

from checkout.services.database import Database, get_database

if TYPE_CHECKING:
    from checkout.orders import OrderMaterializer, OrderStatusService
    from checkout.payments.confirmation import PaymentConfirmationService
    from checkout.payments.intents import PaymentIntentService
    from checkout.services.domains import CouponEvaluator
    from checkout.services.gateways import GatewayRegistry
    from checkout.services.notifications import EmailNotifier
    from checkout.services.shipping import ShippingPusher


# ==================== LAZY SINGLETONS ====================

_gateway_registry: Optional["GatewayRegistry"] = None
_shipping_pusher: Optional["ShippingPusher"] = None
_email_notifier: Optional["EmailNotifier"] = None


def get_gateway_registry() -> "GatewayRegistry":
    """Get or create the gateway adapter registry (lazy loaded)"""
    global _gateway_registry
    if _gateway_registry is None:
        from checkout.services.gateways import build_gateway_registry
        _gateway_registry = build_gateway_registry()
    return _gateway_registry


def get_shipping_pusher() -> "ShippingPusher":
    global _shipping_pusher
    if _shipping_pusher is None:
        from checkout.services.shipping import ShippingPusher
        _shipping_pusher = ShippingPusher()
    return _shipping_pusher


def get_email_notifier() -> "EmailNotifier":
    global _email_notifier
    if _email_notifier is None:
        from checkout.services.notifications import EmailNotifier
        _email_notifier = EmailNotifier()
    return _email_notifier


# ==================== SERVICE BUILDERS ====================

def build_materializer(db: Database) -> "OrderMaterializer":
    from checkout.orders import OrderMaterializer
    return OrderMaterializer(db, get_shipping_pusher(), get_email_notifier())


def build_confirmation_service(db: Database) -> "PaymentConfirmationService":
    """Also used by cron apps, which have no request-scoped dependencies."""
    from checkout.payments.confirmation import PaymentConfirmationService
    return PaymentConfirmationService(db, get_gateway_registry(), build_materializer(db))


# ==================== DEPENDENCY PROVIDERS ====================

def get_db() -> Database:
    return get_database()


def get_intent_service(db: Database = Depends(get_db)) -> "PaymentIntentService":
    from checkout.payments.intents import PaymentIntentService
    return PaymentIntentService(db, get_gateway_registry())


def get_confirmation_service(db: Database = Depends(get_db)) -> "PaymentConfirmationService":
    return build_confirmation_service(db)


def get_order_status_service(db: Database = Depends(get_db)) -> "OrderStatusService":
    from checkout.orders import OrderStatusService
    return OrderStatusService(db)


def get_coupon_evaluator() -> "CouponEvaluator":
    from checkout.services.domains import CouponEvaluator
    return CouponEvaluator()


# ==================== SHUTDOWN HELPERS ====================

async def shutdown_services():
    """Cleanly close singleton services (http clients, etc.)."""
    global _gateway_registry, _shipping_pusher, _email_notifier
    from checkout.logging import get_logger

    logger = get_logger(__name__)
    for service in (_gateway_registry, _shipping_pusher, _email_notifier):
        if service is None:
            continue
        try:
            await service.aclose()
        except Exception as e:
            logger.warning(f"Failed to close {type(service).__name__}: {e}")
    _gateway_registry = None
    _shipping_pusher = None
    _email_notifier = None
