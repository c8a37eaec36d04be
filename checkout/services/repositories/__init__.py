"""Repository pattern for database operations.

Usage:
    from checkout.services.repositories import IntentRepository

    intents = IntentRepository(client)
    intent = await intents.get("pi_abc")
"""
from .base import BaseRepository, is_duplicate_key_error
from .intent_repo import IntentRepository
from .order_repo import OrderRepository
from .product_repo import ProductRepository

__all__ = [
    "BaseRepository",
    "IntentRepository",
    "OrderRepository",
    "ProductRepository",
    "is_duplicate_key_error",
]
