"""Per-process gateway auth token cache.

A latency optimization only: a miss means one extra token fetch. Each
process (or serverless instance) keeps its own copy, so a multi-instance
deployment fetches one token per instance.
"""
import time
from dataclasses import dataclass
from typing import Awaitable, Callable

from checkout.logging import get_logger

logger = get_logger(__name__)

# Refresh this many seconds before the provider's stated expiry
DEFAULT_EXPIRY_SKEW_SECONDS = 60


@dataclass
class CachedToken:
    value: str
    expires_at: float  # epoch seconds


class TokenCache:
    """Time-bounded token cache keyed by provider."""

    def __init__(
        self,
        skew_seconds: int = DEFAULT_EXPIRY_SKEW_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self._tokens: dict[str, CachedToken] = {}
        self._skew = skew_seconds
        self._clock = clock

    def get(self, provider: str) -> str | None:
        cached = self._tokens.get(provider)
        if cached is None:
            return None
        if self._clock() >= cached.expires_at - self._skew:
            self._tokens.pop(provider, None)
            return None
        return cached.value

    def put(self, provider: str, token: str, expires_at: float) -> None:
        self._tokens[provider] = CachedToken(token, expires_at)

    def invalidate(self, provider: str) -> None:
        self._tokens.pop(provider, None)

    async def get_or_fetch(
        self,
        provider: str,
        fetch: Callable[[], Awaitable[tuple[str, float]]],
    ) -> str:
        """Return a cached token or fetch, store and return a fresh one.

        ``fetch`` returns (token, expires_at epoch seconds).
        """
        token = self.get(provider)
        if token:
            return token
        token, expires_at = await fetch()
        self.put(provider, token, expires_at)
        logger.info(f"Fetched {provider} auth token (expires_at={int(expires_at)})")
        return token


_token_cache: TokenCache | None = None


def get_token_cache() -> TokenCache:
    """Process-wide cache shared by gateway adapters."""
    global _token_cache
    if _token_cache is None:
        _token_cache = TokenCache()
    return _token_cache
