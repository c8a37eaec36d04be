"""Admin API key validation."""
import hmac
import os

from fastapi import Header, HTTPException


async def verify_admin_key(
    x_admin_key: str = Header(None, alias="X-Admin-Key")
):
    """Verify ADMIN_API_KEY for order administration endpoints."""
    admin_key = os.environ.get("ADMIN_API_KEY", "")

    if not admin_key:
        raise HTTPException(status_code=500, detail="ADMIN_API_KEY not configured")

    if not hmac.compare_digest(x_admin_key or "", admin_key):
        raise HTTPException(status_code=403, detail="Admin access required")

    return True
