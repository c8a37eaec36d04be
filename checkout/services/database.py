"""
Supabase Database Service

Provides the Database facade over the checkout repositories.

Usage:
    from checkout.services.database import get_database

    # In async context (after init_database() called at startup):
    db = get_database()
    intent = await db.intents.get("pi_abc")

    # At FastAPI startup (lifespan):
    await init_database()
"""

import asyncio
import os
from typing import Optional

from supabase._async.client import AsyncClient
from supabase._async.client import create_client as acreate_client

from checkout.logging import get_logger
from checkout.services.domains import CatalogReader
from checkout.services.repositories import IntentRepository, OrderRepository, ProductRepository

logger = get_logger(__name__)


class Database:
    """
    Supabase database client with checkout repositories.

    Uses the async Supabase client. Build via ``create()`` or
    ``init_database()``; tests construct it directly around a fake client.
    """

    def __init__(self, client: AsyncClient):
        self.client = client

        self.products = ProductRepository(self.client)
        self.intents = IntentRepository(self.client)
        self.orders = OrderRepository(self.client)

        self.catalog = CatalogReader(self.products)

    @classmethod
    async def create(cls) -> "Database":
        """Async factory: creates the Supabase client and repositories."""
        url = os.environ.get("SUPABASE_URL")
        key = os.environ.get("SUPABASE_SERVICE_ROLE_KEY")
        if not url or not key:
            raise ValueError("SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY must be set")

        client = await acreate_client(url, key)
        return cls(client)


# Process-wide instance
_db: Database | None = None
_db_lock: Optional[asyncio.Lock] = None


def _get_lock() -> asyncio.Lock:
    global _db_lock
    if _db_lock is None:
        _db_lock = asyncio.Lock()
    return _db_lock


async def init_database() -> Database:
    """Build the process-wide Database once; concurrent callers share it."""
    global _db
    if _db is not None:
        return _db

    async with _get_lock():
        if _db is None:
            logger.info("Connecting to Supabase")
            _db = await Database.create()
    return _db


async def close_database() -> None:
    """Release the process-wide Database (API lifespan shutdown)."""
    global _db
    if _db is None:
        return
    try:
        await _db.client.auth.sign_out()
    except Exception as e:
        logger.warning(f"Supabase client did not close cleanly: {e}")
    _db = None


async def get_database_async() -> Database:
    """Database for cron apps, which have no lifespan hook to build it."""
    return _db if _db is not None else await init_database()


def get_database() -> Database:
    """
    Database for request handlers. The API lifespan builds it at startup.

    Raises:
        RuntimeError: nothing has called ``init_database()`` yet
    """
    if _db is None:
        raise RuntimeError("Database not initialized; await init_database() or get_database_async() first")
    return _db


def set_database(db: Database | None) -> None:
    """Install a prebuilt Database as the singleton (tests, scripts)."""
    global _db
    _db = db
