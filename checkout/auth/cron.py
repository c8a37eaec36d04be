"""Cron secret validation."""
import hmac
import os

from fastapi import Header, HTTPException


async def verify_cron_secret(
    authorization: str = Header(None, alias="Authorization")
):
    """
    Verify CRON_SECRET for scheduled reconciliation jobs.

    Expects ``Authorization: Bearer <CRON_SECRET>``.
    """
    cron_secret = os.environ.get("CRON_SECRET", "")

    if not cron_secret:
        raise HTTPException(status_code=500, detail="CRON_SECRET not configured")

    if not hmac.compare_digest(authorization or "", f"Bearer {cron_secret}"):
        raise HTTPException(status_code=401, detail="Invalid CRON_SECRET")

    return True
