"""
Storefront Checkout - Main FastAPI Application

Single entry point for the checkout API, gateway webhooks and callbacks.
Reconciliation crons are separate apps under api/cron/.
"""
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

load_dotenv()

from checkout.logging import get_logger  # noqa: E402
from checkout.payments import GATEWAY_ENV_REQUIREMENTS, is_gateway_configured  # noqa: E402
from checkout.routers import (  # noqa: E402
    coupons_router,
    orders_router,
    payments_router,
    register_exception_handlers,
    webhooks_router,
)
from checkout.routers.deps import shutdown_services  # noqa: E402
from checkout.services.database import close_database, init_database  # noqa: E402

logger = get_logger(__name__)


# ==================== FASTAPI APP ====================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler"""
    # Startup
    await init_database()
    yield
    # Shutdown
    await shutdown_services()
    await close_database()


app = FastAPI(
    title="Storefront Checkout",
    description="Payment intents, gateway confirmation and order materialization",
    version="1.0.0",
    lifespan=lifespan,
)

# Guest checkout from the storefront origin
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

app.include_router(payments_router)
app.include_router(webhooks_router)
app.include_router(coupons_router)
app.include_router(orders_router)


# ==================== HEALTH CHECK ====================

@app.get("/health")
@app.get("/api/health")
async def health_check():
    """Health check endpoint. Reports which gateways have credentials set."""
    return {
        "status": "ok",
        "service": "checkout",
        "gateways": {name: is_gateway_configured(name) for name in GATEWAY_ENV_REQUIREMENTS},
    }
