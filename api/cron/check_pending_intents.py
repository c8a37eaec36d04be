"""
Check Pending Intents Cron Job
Schedule: */5 * * * * (every 5 minutes)

Polls the gateway for initiated intents that no webhook or client poll has
confirmed yet, and applies whatever the gateway reports.
"""
import os
from datetime import datetime, timedelta, timezone

from fastapi import Depends, FastAPI

from checkout.auth import verify_cron_secret
from checkout.logging import get_logger

logger = get_logger(__name__)

# Intents younger than this are left to webhooks and client polls
GRACE_MINUTES = int(os.environ.get("PENDING_INTENT_GRACE_MINUTES", "5"))
BATCH_SIZE = 50

# ASGI app (only export app to Vercel, avoid 'handler' symbol)
app = FastAPI()


@app.get("/", dependencies=[Depends(verify_cron_secret)])
@app.get("/api/cron/check_pending_intents", dependencies=[Depends(verify_cron_secret)])
async def check_pending_intents_entrypoint():
    """Vercel Cron entrypoint."""
    from checkout.routers.deps import build_confirmation_service
    from checkout.services.database import get_database_async

    db = await get_database_async()
    service = build_confirmation_service(db)
    summary = await service.poll_initiated(timedelta(minutes=GRACE_MINUTES), limit=BATCH_SIZE)

    logger.info(f"Pending intent check: {summary}")
    return {
        "success": True,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "tasks": summary,
    }
