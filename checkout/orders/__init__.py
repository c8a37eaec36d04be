"""Order materialization, status management and serialization."""
from .materializer import MaterializationResult, OrderMaterializer, generate_order_id
from .serializer import build_intent_payload, build_order_payload, build_totals_payload
from .status_service import TRANSITIONS, OrderStatusService, can_transition

__all__ = [
    "MaterializationResult",
    "OrderMaterializer",
    "OrderStatusService",
    "TRANSITIONS",
    "build_intent_payload",
    "build_order_payload",
    "build_totals_payload",
    "can_transition",
    "generate_order_id",
]
