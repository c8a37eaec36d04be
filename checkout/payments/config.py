"""Payment gateway configuration and validation."""
import logging
import os
from typing import Dict, Optional, Tuple

from fastapi import HTTPException

from .constants import PaymentGateway, normalize_gateway

logger = logging.getLogger(__name__)


# Gateway configuration requirements
GATEWAY_ENV_REQUIREMENTS: Dict[str, Tuple[str, ...]] = {
    PaymentGateway.PHONEPE.value: (
        "PHONEPE_CLIENT_ID",
        "PHONEPE_CLIENT_SECRET",
        "PHONEPE_CLIENT_VERSION",
    ),
    PaymentGateway.RAZORPAY.value: ("RAZORPAY_KEY_ID", "RAZORPAY_KEY_SECRET"),
    PaymentGateway.COD.value: (),
}

# Human-readable gateway names for error messages
GATEWAY_NAMES: Dict[str, str] = {
    PaymentGateway.PHONEPE.value: "PhonePe",
    PaymentGateway.RAZORPAY.value: "Razorpay",
    PaymentGateway.COD.value: "Cash on Delivery",
}

PHONEPE_HOSTS: Dict[str, Tuple[str, str]] = {
    # env -> (oauth base, pg base)
    "sandbox": (
        "https://api-preprod.phonepe.com/apis/pg-sandbox",
        "https://api-preprod.phonepe.com/apis/pg-sandbox",
    ),
    "production": (
        "https://api.phonepe.com/apis/identity-manager",
        "https://api.phonepe.com/apis/pg",
    ),
}


def get_gateway_config(gateway: str) -> Dict[str, Optional[str]]:
    """
    Get all environment variables for a gateway.

    Returns dict with config keys and their values (or None if not set).
    """
    gateway = normalize_gateway(gateway)

    if gateway == PaymentGateway.PHONEPE.value:
        return {
            "client_id": os.environ.get("PHONEPE_CLIENT_ID"),
            "client_secret": os.environ.get("PHONEPE_CLIENT_SECRET"),
            "client_version": os.environ.get("PHONEPE_CLIENT_VERSION"),
        }
    elif gateway == PaymentGateway.RAZORPAY.value:
        return {
            "key_id": os.environ.get("RAZORPAY_KEY_ID"),
            "key_secret": os.environ.get("RAZORPAY_KEY_SECRET"),
        }
    return {}


def validate_gateway_config(gateway: str) -> str:
    """
    Validate payment gateway environment configuration.

    Args:
        gateway: Gateway name (will be normalized)

    Returns:
        Normalized gateway name

    Raises:
        HTTPException: If gateway is unknown or not configured
    """
    gateway = normalize_gateway(gateway)
    if gateway not in GATEWAY_ENV_REQUIREMENTS:
        raise HTTPException(status_code=400, detail=f"Unknown payment gateway: {gateway}")

    config = get_gateway_config(gateway)
    name = GATEWAY_NAMES.get(gateway, gateway)

    missing = [key for key, value in config.items() if not value]
    if missing:
        env_vars = GATEWAY_ENV_REQUIREMENTS.get(gateway, ())
        logger.error(f"Payment gateway {name} not configured. Missing: {missing}")
        raise HTTPException(
            status_code=500,
            detail=f"{name} is not configured. Set: {', '.join(env_vars)}",
        )

    return gateway


def is_gateway_configured(gateway: str) -> bool:
    """Check if a gateway is properly configured without raising exceptions."""
    gateway = normalize_gateway(gateway)
    if gateway not in GATEWAY_ENV_REQUIREMENTS:
        return False
    config = get_gateway_config(gateway)
    return all(value for value in config.values())


def get_phonepe_hosts() -> Tuple[str, str]:
    """Return (oauth base URL, payment gateway base URL) for PHONEPE_ENV."""
    env = os.environ.get("PHONEPE_ENV", "sandbox").lower()
    return PHONEPE_HOSTS.get(env, PHONEPE_HOSTS["sandbox"])
