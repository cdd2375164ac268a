"""
Payment API Routes for StoryTime

Coin packages are sold through Razorpay:
- create-order: server-side order for a coin package (amount from our catalog)
- verify-payment: checkout callback, verified against Razorpay before any
  coins are credited, and applied at most once per payment id
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from config import settings
from models.account import ParentSettings
from models.billing import CoinPackage
from models.database import get_db
from subscription.errors import EntitlementError
from subscription.payment_gateway import (
    PaymentGatewayError,
    PaymentProcessor,
    get_payment_processor,
    to_minor_units,
)
from subscription.payment_verifier import PaymentVerificationPipeline
from utils.logger import logger
from web_ui.api.middleware.auth import (
    AuthenticatedUser,
    check_not_blocked,
    get_current_account,
    get_current_user,
)
from web_ui.api.schemas.billing_schemas import CreateOrderRequest, VerifyPaymentRequest
from web_ui.api.utils.http_errors import handle_errors

router = APIRouter()


def _require_processor(processor: Optional[PaymentProcessor]) -> PaymentProcessor:
    if processor is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "error": "PaymentsNotConfigured",
                "message": "Payment system not configured. Please contact support.",
            },
        )
    return processor


@router.post("/razorpay/create-order")
async def create_order(
    request: CreateOrderRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    processor: Optional[PaymentProcessor] = Depends(get_payment_processor),
    db: Session = Depends(get_db),
):
    """Create a Razorpay order for a coin package"""
    processor = _require_processor(processor)

    package = db.get(CoinPackage, request.coin_package_id)
    if package is None or not package.is_active:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "NotFound", "message": "Coin package not found or inactive"},
        )

    amount = to_minor_units(package.price)
    try:
        order = await processor.create_order(
            amount,
            package.currency,
            notes={
                "userId": user.uid,
                "coinPackageId": str(package.id),
                "coins": str(package.coins),
            },
        )
    except PaymentGatewayError:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"error": "GatewayError", "message": "Failed to create payment order"},
        )

    logger.info(f"Created order {order.order_id} for user {user.uid}: package={package.id} amount={amount}")

    return {
        "orderId": order.order_id,
        "amount": order.amount,
        "currency": order.currency,
        "keyId": settings.RAZORPAY_KEY_ID or None,
        "coinPackage": {
            "id": package.id,
            "name": package.name,
            "coins": package.coins,
            "price": f"{package.price:.2f}",
        },
    }


@router.post("/razorpay/verify-payment")
async def verify_payment(
    request: VerifyPaymentRequest,
    account: ParentSettings = Depends(get_current_account),
    _: AuthenticatedUser = Depends(check_not_blocked),
    processor: Optional[PaymentProcessor] = Depends(get_payment_processor),
    db: Session = Depends(get_db),
):
    """
    Verify a Razorpay checkout callback and credit coins.

    Every failed stage answers with its own error code (InvalidSignature,
    PaymentNotCaptured, OrderMismatch, AlreadyProcessed, AmountMismatch,
    VerificationUnavailable) and leaves the balance untouched.
    """
    processor = _require_processor(processor)

    pipeline = PaymentVerificationPipeline(
        processor,
        secret=settings.RAZORPAY_KEY_SECRET,
        fetch_timeout=settings.PAYMENT_FETCH_TIMEOUT_SECONDS,
    )

    with handle_errors(db, "verify payment"):
        try:
            result = await pipeline.verify(
                db,
                user_id=account.user_id,
                order_id=request.razorpay_order_id,
                payment_id=request.razorpay_payment_id,
                signature=request.razorpay_signature,
                coin_package_id=request.coin_package_id,
            )
        except EntitlementError as e:
            logger.warning(
                f"Payment verification failed for user {account.user_id}: {e.code} "
                f"(payment={request.razorpay_payment_id}, order={request.razorpay_order_id})"
            )
            raise
        return result.to_dict()
