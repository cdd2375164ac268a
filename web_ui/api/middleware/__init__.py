"""
StoryTime API Middleware

Authentication, entitlement gating and rate limiting for the FastAPI application.
"""

from .auth import (
    get_current_user,
    get_current_account,
    require_admin,
    check_not_blocked,
    get_subscription_info,
    require_active_pass,
    verify_firebase_token,
    AuthenticatedUser,
)

from .rate_limit import (
    RateLimitMiddleware,
    rate_limiter,
)

__all__ = [
    # Auth
    "get_current_user",
    "get_current_account",
    "require_admin",
    "check_not_blocked",
    "get_subscription_info",
    "require_active_pass",
    "verify_firebase_token",
    "AuthenticatedUser",
    # Rate limiting
    "RateLimitMiddleware",
    "rate_limiter",
]
