"""In-memory rate limiting of inbound channel messages.

Each sender (``sms:+15551234567``, ``web:<session key>``) gets a token bucket
so one noisy number cannot keep the agent loop busy. Buckets live in process
memory; every API worker limits independently.
"""

import time
from functools import lru_cache

from fastapi import HTTPException

from app.core.config import get_settings
from app.core.logging import get_logger

logger = get_logger(__name__)


class RateLimiter:
    """
    Token bucket per key.

    A bucket holds up to ``burst_size`` tokens and refills at
    ``requests_per_minute / 60`` tokens per second.
    """

    def __init__(self, requests_per_minute: int = 20, burst_size: int | None = None):
        self.requests_per_minute = requests_per_minute
        self.burst_size = burst_size if burst_size is not None else requests_per_minute
        self.refill_rate = requests_per_minute / 60.0

        # key -> (tokens, last refill time)
        self._buckets: dict[str, tuple[float, float]] = {}

    def _tokens(self, key: str, now: float) -> float:
        tokens, last_refill = self._buckets.get(key, (float(self.burst_size), now))
        return min(float(self.burst_size), tokens + (now - last_refill) * self.refill_rate)

    def check_limit(self, key: str, cost: float = 1.0) -> bool:
        """
        Take ``cost`` tokens from the key's bucket.

        Returns:
            True if allowed

        Raises:
            HTTPException: 429 with Retry-After if the bucket is empty
        """
        now = time.monotonic()
        tokens = self._tokens(key, now)

        if tokens >= cost:
            self._buckets[key] = (tokens - cost, now)
            return True

        self._buckets[key] = (tokens, now)
        retry_after = int((cost - tokens) / self.refill_rate) + 1 if self.refill_rate else 60
        logger.warning(f"Inbound rate limit exceeded for {key}, retry after {retry_after}s")

        raise HTTPException(
            status_code=429,
            detail=f"Rate limit exceeded. Try again in {retry_after} seconds.",
            headers={"Retry-After": str(retry_after)},
        )


@lru_cache(maxsize=1)
def get_inbound_rate_limiter() -> RateLimiter:
    """Process-wide limiter for inbound channel messages."""
    return RateLimiter(requests_per_minute=get_settings().INBOUND_RATE_LIMIT_PER_MINUTE)


def check_inbound_rate_limit(channel_type: str, channel_identifier: str) -> None:
    """
    Check rate limit for one channel identifier.

    Raises:
        HTTPException: 429 if rate limited
    """
    get_inbound_rate_limiter().check_limit(f"{channel_type}:{channel_identifier}")
