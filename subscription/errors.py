"""
Entitlement error taxonomy.

Every failure the engine reports carries a machine-readable code, the HTTP
status it maps to, a user-facing message and optional context fields that
are merged into the response body.
"""

from typing import Any, Dict, Optional


class EntitlementError(Exception):
    """Base class for all entitlement and payment errors"""

    status_code: int = 500
    default_message: str = "Internal error"

    def __init__(self, message: Optional[str] = None, **context: Any):
        self.message = message or self.default_message
        self.context: Dict[str, Any] = context
        super().__init__(self.message)

    @property
    def code(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict:
        return {"error": self.code, "message": self.message, **self.context}


class Unauthenticated(EntitlementError):
    status_code = 401
    default_message = "Authentication required"


class Forbidden(EntitlementError):
    status_code = 403
    default_message = "Forbidden"


class NotFound(EntitlementError):
    status_code = 404
    default_message = "Not found"


class ValidationFailed(EntitlementError):
    status_code = 400
    default_message = "Invalid request"


class SubscriptionRequired(EntitlementError):
    status_code = 402
    default_message = "Your trial has expired. Please purchase a subscription to continue."


# Payment verification failures share one generic user-facing message;
# the code identifies the failed stage.

class PaymentVerificationError(EntitlementError):
    status_code = 400
    default_message = "Payment verification failed"


class InvalidSignature(PaymentVerificationError):
    pass


class PaymentNotCaptured(PaymentVerificationError):
    pass


class OrderMismatch(PaymentVerificationError):
    pass


class AmountMismatch(PaymentVerificationError):
    pass


class AlreadyProcessed(PaymentVerificationError):
    default_message = "Payment already processed"


class VerificationUnavailable(EntitlementError):
    status_code = 503
    default_message = "Payment verification is temporarily unavailable. Please retry."


# Coin ledger

class InsufficientCoins(EntitlementError):
    status_code = 400
    default_message = "Insufficient coins"


class PlanNotPurchasable(EntitlementError):
    status_code = 400
    default_message = "This plan is not available for coin purchase"
