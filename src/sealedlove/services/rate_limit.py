"""Rate limiting service using fixed windows in the ephemeral store."""

import logging
import time
from dataclasses import dataclass
from enum import Enum

from fastapi import Request

from sealedlove.services.cache import EphemeralStore, StoreUnavailable

logger = logging.getLogger(__name__)

RATE_LIMIT_PREFIX = "rate-limit:"


class RateLimitType(str, Enum):
    """Rate limit types for different endpoint categories."""

    API = "api"
    AUTH = "auth"
    CONTACT = "contact"


@dataclass
class RateLimitConfig:
    """Configuration for a rate limit type."""

    requests: int
    window_seconds: int


# Auth endpoints have stricter limits to prevent brute force
RATE_LIMIT_CONFIG: dict[RateLimitType, RateLimitConfig] = {
    RateLimitType.API: RateLimitConfig(requests=60, window_seconds=60),
    RateLimitType.AUTH: RateLimitConfig(requests=10, window_seconds=60),
    RateLimitType.CONTACT: RateLimitConfig(requests=5, window_seconds=60 * 60),
}


@dataclass
class RateLimitResult:
    """Result of a rate limit check."""

    success: bool
    limit: int
    remaining: int
    reset: int  # Unix timestamp in seconds


class RateLimiter:
    """Fixed-window limiter shared by every server instance.

    If the store cannot be reached the request is let through and a warning is
    logged; the endpoints behind the limiter report store outages themselves.
    """

    def __init__(self, store: EphemeralStore):
        self.store = store

    async def check(
        self,
        identifier: str,
        limit_type: RateLimitType,
    ) -> RateLimitResult:
        """Count a request for an identifier.

        Args:
            identifier: Unique identifier (e.g., "ip:1.2.3.4" or "ip:1.2.3.4:a@b.c")
            limit_type: Type of rate limit to apply

        Returns:
            RateLimitResult with success status and limit info
        """
        config = RATE_LIMIT_CONFIG[limit_type]
        key = f"{RATE_LIMIT_PREFIX}{limit_type.value}:{identifier}"
        now = int(time.time())

        try:
            count, window_left = await self.store.increment(key, config.window_seconds)
        except StoreUnavailable as e:
            logger.warning(f"Rate limit check skipped for {key}: {e}")
            return RateLimitResult(
                success=True,
                limit=config.requests,
                remaining=config.requests,
                reset=now + config.window_seconds,
            )

        return RateLimitResult(
            success=count <= config.requests,
            limit=config.requests,
            remaining=max(0, config.requests - count),
            reset=now + window_left,
        )


def get_client_ip(request: Request) -> str | None:
    """Extract client IP from request headers.

    Checks common headers used by proxies and load balancers.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        # x-forwarded-for can be a comma-separated list, take the first IP
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    cf_connecting_ip = request.headers.get("cf-connecting-ip")
    if cf_connecting_ip:
        return cf_connecting_ip.strip()

    if request.client:
        return request.client.host

    return None


def get_identifier(ip: str | None, scope: str | None = None) -> str:
    """Get identifier for rate limiting.

    The client IP, optionally narrowed by a scope such as a submitted email.
    """
    identifier = f"ip:{ip or 'unknown'}"
    if scope:
        identifier = f"{identifier}:{scope.strip().lower()}"
    return identifier


async def check_rate_limit(
    request: Request,
    limit_type: RateLimitType,
    store: EphemeralStore,
    scope: str | None = None,
) -> RateLimitResult:
    """Check rate limit for a request.

    Args:
        request: FastAPI request
        limit_type: Type of rate limit to apply
        store: Ephemeral store holding the counters
        scope: Optional extra component of the identifier

    Returns:
        RateLimitResult with success status and limit info
    """
    identifier = get_identifier(get_client_ip(request), scope)
    return await RateLimiter(store).check(identifier, limit_type)


def rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    """Generate rate limit headers for response."""
    headers = {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(result.remaining),
        "X-RateLimit-Reset": str(result.reset),
    }

    if not result.success:
        retry_after = max(0, result.reset - int(time.time()))
        headers["Retry-After"] = str(retry_after)

    return headers
