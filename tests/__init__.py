"""
StoryTime Test Suite

Tests for:
- Entitlement resolution and subscription lifecycle
- Coin ledger and Razorpay payment verification
- Account bootstrap and admin privilege control
- Stories, review payouts and reading checkpoints
- HTTP API endpoints and rate limiting

Run tests with:
    pytest tests/ -v

Run fast tests only:
    pytest tests/ -v -m "not slow"
"""
