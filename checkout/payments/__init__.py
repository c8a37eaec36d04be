"""Payment intent lifecycle: constants, gateway config, intents and confirmation."""
from .config import (
    GATEWAY_ENV_REQUIREMENTS,
    GATEWAY_NAMES,
    get_gateway_config,
    is_gateway_configured,
    validate_gateway_config,
)
from .constants import (
    CLIENT_STATUS,
    OPEN_INTENT_STATES,
    AttemptStatus,
    IntentStatus,
    OrderStatus,
    PaymentGateway,
    ProviderState,
    normalize_gateway,
)

__all__ = [
    "AttemptStatus",
    "CLIENT_STATUS",
    "GATEWAY_ENV_REQUIREMENTS",
    "GATEWAY_NAMES",
    "IntentStatus",
    "OPEN_INTENT_STATES",
    "OrderStatus",
    "PaymentGateway",
    "ProviderState",
    "get_gateway_config",
    "is_gateway_configured",
    "normalize_gateway",
    "validate_gateway_config",
]
