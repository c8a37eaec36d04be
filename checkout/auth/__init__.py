"""Authentication package."""
from .admin import verify_admin_key
from .cron import verify_cron_secret

__all__ = [
    "verify_admin_key",
    "verify_cron_secret",
]
