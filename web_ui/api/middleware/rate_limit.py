"""
Rate Limiting Middleware for the StoryTime Web API

Implements sliding window rate limiting to prevent API abuse.
PIN verification and the payment/coin endpoints get much tighter limits
than general traffic (PIN brute force, order spam, replay attempts).

For production with several instances, consider Redis for shared state.
"""

import time
import logging
from typing import Optional, Dict, Tuple
from collections import defaultdict
from dataclasses import dataclass, field

from fastapi import Request, status
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse

from config import settings
from web_ui.api.utils.security import get_client_ip

logger = logging.getLogger(__name__)


@dataclass
class RateLimitConfig:
    """Configuration for rate limiting"""
    requests_per_minute: int = 60
    requests_per_hour: int = 1000
    burst_limit: int = 20  # Max requests in 10 seconds


DEFAULT_LIMIT = RateLimitConfig(
    requests_per_minute=120,
    requests_per_hour=3000,
    burst_limit=30,
)

# Endpoint-specific limits (override the default)
ENDPOINT_LIMITS: Dict[str, RateLimitConfig] = {
    # 4-digit PIN: brute force protection
    "/api/verify-pin": RateLimitConfig(
        requests_per_minute=5,
        requests_per_hour=30,
        burst_limit=3,
    ),
    # Payment and coin operations
    "/api/razorpay/create-order": RateLimitConfig(
        requests_per_minute=10,
        requests_per_hour=60,
        burst_limit=5,
    ),
    "/api/razorpay/verify-payment": RateLimitConfig(
        requests_per_minute=10,
        requests_per_hour=100,
        burst_limit=5,
    ),
    "/api/subscriptions/purchase-with-coins": RateLimitConfig(
        requests_per_minute=10,
        requests_per_hour=60,
        burst_limit=5,
    ),
}

# Paths to skip rate limiting
SKIP_PATHS = {
    "/",
    "/health",
    "/docs",
    "/openapi.json",
    "/redoc",
}


@dataclass
class RateLimitState:
    """Track rate limit state for a single key"""
    minute_requests: list = field(default_factory=list)
    hour_requests: list = field(default_factory=list)
    burst_requests: list = field(default_factory=list)

    def cleanup(self, now: float):
        """Remove expired entries"""
        minute_ago = now - 60
        hour_ago = now - 3600
        burst_window = now - 10

        self.minute_requests = [t for t in self.minute_requests if t > minute_ago]
        self.hour_requests = [t for t in self.hour_requests if t > hour_ago]
        self.burst_requests = [t for t in self.burst_requests if t > burst_window]

    def add_request(self, now: float):
        """Record a new request"""
        self.minute_requests.append(now)
        self.hour_requests.append(now)
        self.burst_requests.append(now)

    def check_limit(self, config: RateLimitConfig) -> Tuple[bool, str, int]:
        """
        Check if rate limit is exceeded.

        Returns: (is_allowed, limit_type, retry_after_seconds)
        """
        if len(self.burst_requests) >= config.burst_limit:
            return False, "burst", 10

        if len(self.minute_requests) >= config.requests_per_minute:
            return False, "minute", 60

        if len(self.hour_requests) >= config.requests_per_hour:
            return False, "hour", 3600

        return True, "", 0


class RateLimiter:
    """In-memory rate limiter using a sliding window per (client, endpoint)"""

    def __init__(self):
        self._state: Dict[str, RateLimitState] = defaultdict(RateLimitState)
        self._last_cleanup = time.time()
        self._cleanup_interval = 300  # Cleanup every 5 minutes

    def _get_key(self, identifier: str, endpoint: str) -> str:
        return f"{identifier}:{endpoint}"

    def _periodic_cleanup(self, now: float):
        """Periodically clean up expired entries to prevent memory growth"""
        if now - self._last_cleanup > self._cleanup_interval:
            keys_to_remove = []
            for key, state in self._state.items():
                state.cleanup(now)
                if not state.minute_requests and not state.hour_requests:
                    keys_to_remove.append(key)

            for key in keys_to_remove:
                del self._state[key]

            self._last_cleanup = now

    def reset(self):
        self._state.clear()

    def check_rate_limit(
        self,
        identifier: str,
        endpoint: str,
        now: Optional[float] = None,
    ) -> Tuple[bool, Optional[str], int, Dict[str, int]]:
        """
        Check if request is allowed under rate limits.

        Args:
            identifier: Client IP address
            endpoint: Normalized API path

        Returns:
            (is_allowed, limit_type, retry_after, headers)
        """
        now = now if now is not None else time.time()
        self._periodic_cleanup(now)

        config = ENDPOINT_LIMITS.get(endpoint, DEFAULT_LIMIT)

        key = self._get_key(identifier, endpoint)
        state = self._state[key]
        state.cleanup(now)

        is_allowed, limit_type, retry_after = state.check_limit(config)

        headers = {
            "X-RateLimit-Limit-Minute": config.requests_per_minute,
            "X-RateLimit-Remaining-Minute": max(0, config.requests_per_minute - len(state.minute_requests)),
        }

        if is_allowed:
            state.add_request(now)

        return is_allowed, limit_type, retry_after, headers


# Global rate limiter instance
rate_limiter = RateLimiter()


def normalize_endpoint(path: str) -> str:
    """Strip the trailing slash and collapse numeric ids so /stories/12 and /stories/13 share a bucket"""
    parts = path.rstrip("/").split("/")
    return "/".join("{id}" if part.isdigit() else part for part in parts)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    FastAPI middleware for rate limiting.

    Applies limits per client IP address, with endpoint-specific limits
    for sensitive operations.
    """

    async def dispatch(self, request: Request, call_next):
        path = request.url.path

        if not settings.RATE_LIMIT_ENABLED or path in SKIP_PATHS:
            return await call_next(request)

        identifier = get_client_ip(request)
        endpoint = normalize_endpoint(path)

        is_allowed, limit_type, retry_after, headers = rate_limiter.check_rate_limit(identifier, endpoint)

        if not is_allowed:
            logger.warning(
                f"Rate limit exceeded: {identifier} on {endpoint} ({limit_type} limit)"
            )

            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={
                    "detail": {
                        "error": "RateLimited",
                        "message": f"Rate limit exceeded ({limit_type}). Please slow down.",
                        "retryAfter": retry_after,
                    },
                },
                headers={
                    "Retry-After": str(retry_after),
                    **{k: str(v) for k, v in headers.items()},
                },
            )

        response = await call_next(request)

        for key, value in headers.items():
            response.headers[key] = str(value)

        return response
