"""Base repository with shared Supabase client."""

from supabase._async.client import AsyncClient

# Postgres unique_violation
UNIQUE_VIOLATION = "23505"


class BaseRepository:
    """Base class for all repositories.

    All methods await the async client.
    """

    def __init__(self, client: AsyncClient) -> None:
        self.client = client


def is_duplicate_key_error(exception: Exception) -> bool:
    """Check if exception is a duplicate key constraint violation."""
    code = getattr(exception, "code", None)
    if code is not None and (str(code) == UNIQUE_VIOLATION or str(code) == "409"):
        return True

    error_str = str(exception).lower()
    return any(
        keyword in error_str
        for keyword in (UNIQUE_VIOLATION, "duplicate key", "unique constraint")
    )
