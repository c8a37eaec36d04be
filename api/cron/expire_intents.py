"""
Expire Intents Cron Job
Schedule: */10 * * * * (every 10 minutes)

Tasks:
1. Expire pending intents past expires_at (they never reached a gateway)
2. Ask the gateway about initiated intents past expires_at; expire only those
   still not completed
"""
from datetime import datetime, timezone

from fastapi import Depends, FastAPI

from checkout.auth import verify_cron_secret
from checkout.logging import get_logger

logger = get_logger(__name__)

BATCH_SIZE = 100

# ASGI app (only export app to Vercel, avoid 'handler' symbol)
app = FastAPI()


@app.get("/", dependencies=[Depends(verify_cron_secret)])
@app.get("/api/cron/expire_intents", dependencies=[Depends(verify_cron_secret)])
async def expire_intents_entrypoint():
    """Vercel Cron entrypoint."""
    from checkout.routers.deps import build_confirmation_service
    from checkout.services.database import get_database_async

    db = await get_database_async()
    service = build_confirmation_service(db)
    now = datetime.now(timezone.utc)
    summary = await service.expire_stale(now, limit=BATCH_SIZE)

    logger.info(f"Intent expiry: {summary}")
    return {
        "success": True,
        "timestamp": now.isoformat(),
        "tasks": summary,
    }
