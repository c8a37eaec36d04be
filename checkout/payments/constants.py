"""Payment constants, enums, and aliases."""
from enum import Enum
from typing import Set


class PaymentGateway(str, Enum):
    """Supported payment gateways."""
    PHONEPE = "phonepe"
    RAZORPAY = "razorpay"
    COD = "cod"


class IntentStatus(str, Enum):
    """
    Payment intent lifecycle.

    Flow:
        pending -> initiated -> paid
                             -> failed
                             -> expired

    - pending: Created with a server-side totals snapshot
    - initiated: Gateway acknowledged the transaction
    - paid: Gateway reported completion (final)
    - failed: Gateway reported failure or amount drifted (final)
    - expired: Never completed within the TTL (final)
    """
    PENDING = "pending"
    INITIATED = "initiated"
    PAID = "paid"
    FAILED = "failed"
    EXPIRED = "expired"


class ProviderState(str, Enum):
    """Shared vocabulary every gateway adapter maps its own states into."""
    INITIATED = "INITIATED"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    EXPIRED = "EXPIRED"
    PENDING = "PENDING"


class AttemptStatus(str, Enum):
    """Outcome of a single gateway create-transaction call."""
    INITIATED = "initiated"
    REJECTED = "rejected"
    ERROR = "error"


class OrderStatus(str, Enum):
    """
    Order status lifecycle (independent of the intent status).

    Flow:
        pending -> processing -> shipped -> delivered
                -> cancelled  -> cancelled
    """
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class ShippingPushStatus(str, Enum):
    PUSHING = "pushing"
    PUSHED = "pushed"
    PUSH_FAILED = "push_failed"
    SKIPPED = "skipped"


class EmailStatus(str, Enum):
    SENDING = "sending"
    SENT = "sent"
    FAILED = "failed"
    SKIPPED = "skipped"


# Gateway name aliases (input -> canonical)
GATEWAY_ALIASES: dict[str, str] = {
    "phonepe": PaymentGateway.PHONEPE.value,
    "phone_pe": PaymentGateway.PHONEPE.value,
    "upi": PaymentGateway.PHONEPE.value,
    "razorpay": PaymentGateway.RAZORPAY.value,
    "razor_pay": PaymentGateway.RAZORPAY.value,
    "card": PaymentGateway.RAZORPAY.value,
    "cod": PaymentGateway.COD.value,
    "cash_on_delivery": PaymentGateway.COD.value,
    "cash-on-delivery": PaymentGateway.COD.value,
}

# Statuses that still accept confirmation signals
OPEN_INTENT_STATES: Set[str] = {
    IntentStatus.PENDING.value,
    IntentStatus.INITIATED.value,
}

# Provider state -> terminal intent status it drives
PROVIDER_TERMINAL_STATUS: dict[str, str] = {
    ProviderState.COMPLETED.value: IntentStatus.PAID.value,
    ProviderState.FAILED.value: IntentStatus.FAILED.value,
    ProviderState.EXPIRED.value: IntentStatus.EXPIRED.value,
}

# Intent status -> state reported to clients polling for the outcome
CLIENT_STATUS: dict[str, str] = {
    IntentStatus.PENDING.value: ProviderState.PENDING.value,
    IntentStatus.INITIATED.value: ProviderState.PENDING.value,
    IntentStatus.PAID.value: ProviderState.COMPLETED.value,
    IntentStatus.FAILED.value: ProviderState.FAILED.value,
    IntentStatus.EXPIRED.value: ProviderState.EXPIRED.value,
}


def normalize_gateway(gateway: str | None) -> str:
    """
    Normalize gateway name to canonical form.

    Example:
        normalize_gateway("PhonePe") -> "phonepe"
        normalize_gateway("card") -> "razorpay"
    """
    if not gateway:
        return PaymentGateway.PHONEPE.value

    normalized = gateway.lower().strip()
    return GATEWAY_ALIASES.get(normalized, normalized)
