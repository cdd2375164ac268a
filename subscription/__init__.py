"""
Subscription & Coin Entitlement Engine for StoryTime

Decides who may read, and keeps the coin economy consistent:
- Trial window started at first settings creation
- Time-boxed passes bought with coins (append-only history)
- Coin ledger with relative, conditional balance updates
- Razorpay payment verification applied exactly once
- Admin privilege control with a one-time bootstrap

Access status is recomputed on every request from the account, its latest
subscription and the current time; nothing about entitlement is cached.
"""

from subscription.models import (
    EntitlementStatus,
    SubscriptionRecordStatus,
    BillingPeriod,
    StoryStatus,
    SubscriptionInfo,
)
from subscription.errors import (
    EntitlementError,
    Unauthenticated,
    Forbidden,
    NotFound,
    ValidationFailed,
    SubscriptionRequired,
    InvalidSignature,
    PaymentNotCaptured,
    OrderMismatch,
    AmountMismatch,
    AlreadyProcessed,
    VerificationUnavailable,
    InsufficientCoins,
    PlanNotPurchasable,
)
from subscription.entitlement import resolve, resolve_for_user
from subscription.payment_gateway import (
    PaymentProcessor,
    ProcessorPayment,
    OrderDescriptor,
    get_payment_processor,
)
from subscription.payment_verifier import PaymentVerificationPipeline

__all__ = [
    # Models
    'EntitlementStatus',
    'SubscriptionRecordStatus',
    'BillingPeriod',
    'StoryStatus',
    'SubscriptionInfo',
    # Errors
    'EntitlementError',
    'Unauthenticated',
    'Forbidden',
    'NotFound',
    'ValidationFailed',
    'SubscriptionRequired',
    'InvalidSignature',
    'PaymentNotCaptured',
    'OrderMismatch',
    'AmountMismatch',
    'AlreadyProcessed',
    'VerificationUnavailable',
    'InsufficientCoins',
    'PlanNotPurchasable',
    # Resolver
    'resolve',
    'resolve_for_user',
    # Payments
    'PaymentProcessor',
    'ProcessorPayment',
    'OrderDescriptor',
    'get_payment_processor',
    'PaymentVerificationPipeline',
]
