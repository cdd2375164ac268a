"""
Payment Verification Pipeline

Verifies a client-reported payment confirmation against the processor and
credits the purchased coins exactly once.

Stages run strictly in order; any failure aborts before anything is written:

1. signature   HMAC-SHA256(secret, "order_id|payment_id") compared in constant time
2. fetch       authoritative payment record from the processor, with a timeout
3. capture     processor status must be exactly "captured"
4. order       processor order id must equal the client-supplied one
5. replay      no ProcessedPayment row may exist for the payment id
6. amount      captured amount must equal the package price in minor units
7. commit      ProcessedPayment row and coin credit in one transaction

The unique constraint on ProcessedPayment.razorpay_payment_id closes the gap
between stage 5 and stage 7 for concurrent replays.
"""

import asyncio
import hashlib
import hmac
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models.billing import CoinPackage, ProcessedPayment
from models.database import utcnow
from subscription import coin_ledger
from subscription.errors import (
    AlreadyProcessed,
    AmountMismatch,
    InvalidSignature,
    NotFound,
    OrderMismatch,
    PaymentNotCaptured,
    VerificationUnavailable,
)
from subscription.payment_gateway import (
    PaymentGatewayError,
    PaymentProcessor,
    ProcessorPayment,
    to_minor_units,
)

logger = logging.getLogger(__name__)


@dataclass
class VerificationResult:
    payment_id: str
    coins_added: int
    total_coins: int

    def to_dict(self) -> dict:
        return {
            "success": True,
            "message": "Payment verified and coins credited",
            "coinsAdded": self.coins_added,
            "totalCoins": self.total_coins,
        }


def compute_signature(secret: str, order_id: str, payment_id: str) -> str:
    """Razorpay checkout signature: hex HMAC-SHA256 over "order_id|payment_id" """
    body = f"{order_id}|{payment_id}"
    return hmac.new(secret.encode("utf-8"), body.encode("utf-8"), hashlib.sha256).hexdigest()


class PaymentVerificationPipeline:
    """Runs the verification stages for one payment confirmation"""

    def __init__(self, processor: PaymentProcessor, secret: str, fetch_timeout: float = 10.0):
        self.processor = processor
        self.secret = secret
        self.fetch_timeout = fetch_timeout

    def _log(self, level: int, stage: str, user_id: str, order_id: str, payment_id: str, msg: str = "") -> None:
        logger.log(
            level,
            f"[verify-payment:{stage}] user={user_id} order={order_id} payment={payment_id}"
            + (f" {msg}" if msg else ""),
        )

    def check_signature(self, order_id: str, payment_id: str, signature: Optional[str]) -> bool:
        expected = compute_signature(self.secret, order_id, payment_id)
        return hmac.compare_digest(expected.encode("utf-8"), (signature or "").encode("utf-8"))

    async def fetch_payment(self, payment_id: str) -> ProcessorPayment:
        try:
            return await asyncio.wait_for(
                self.processor.fetch_payment(payment_id),
                timeout=self.fetch_timeout,
            )
        except asyncio.TimeoutError:
            raise VerificationUnavailable(reason="timeout")
        except PaymentGatewayError:
            raise VerificationUnavailable(reason="processor_error")

    async def verify(
        self,
        db: Session,
        user_id: str,
        order_id: str,
        payment_id: str,
        signature: Optional[str],
        coin_package_id: int,
    ) -> VerificationResult:
        log = self._log
        log(logging.INFO, "start", user_id, order_id, payment_id, f"package={coin_package_id}")

        # 1. Signature
        if not self.check_signature(order_id, payment_id, signature):
            log(logging.WARNING, "signature", user_id, order_id, payment_id, "signature mismatch")
            raise InvalidSignature()
        log(logging.INFO, "signature", user_id, order_id, payment_id, "ok")

        # 2. Remote fetch
        try:
            payment = await self.fetch_payment(payment_id)
        except VerificationUnavailable as e:
            log(logging.ERROR, "fetch", user_id, order_id, payment_id, f"unavailable ({e.context.get('reason')})")
            raise
        log(logging.INFO, "fetch", user_id, order_id, payment_id,
            f"status={payment.status} amount={payment.amount} currency={payment.currency}")

        # 3. Capture
        if not payment.is_captured:
            log(logging.WARNING, "capture", user_id, order_id, payment_id, f"status={payment.status}")
            raise PaymentNotCaptured(status=payment.status)

        # 4. Order cross-reference
        if payment.order_id != order_id:
            log(logging.WARNING, "order", user_id, order_id, payment_id, f"processor_order={payment.order_id}")
            raise OrderMismatch()

        # 5. Replay
        existing = (
            db.query(ProcessedPayment)
            .filter(ProcessedPayment.razorpay_payment_id == payment_id)
            .first()
        )
        if existing is not None:
            log(logging.WARNING, "replay", user_id, order_id, payment_id,
                f"already processed at {existing.processed_at} for user {existing.user_id}")
            raise AlreadyProcessed()

        # 6. Amount
        package = db.get(CoinPackage, coin_package_id)
        if package is None:
            log(logging.WARNING, "amount", user_id, order_id, payment_id, f"package {coin_package_id} not found")
            raise NotFound("Coin package not found")

        expected_amount = to_minor_units(package.price)
        if payment.amount != expected_amount:
            log(logging.WARNING, "amount", user_id, order_id, payment_id,
                f"expected={expected_amount} received={payment.amount}")
            raise AmountMismatch()

        # 7. Commit: ledger row first, then credit, one transaction
        try:
            db.add(ProcessedPayment(
                user_id=user_id,
                razorpay_payment_id=payment_id,
                razorpay_order_id=order_id,
                amount=payment.amount,
                currency=payment.currency or package.currency,
                coin_package_id=package.id,
                coins_awarded=package.coins,
                processed_at=utcnow(),
            ))
            db.flush()
            total = coin_ledger.credit_from_purchase(db, user_id, package.id, package.coins)
            db.commit()
        except IntegrityError:
            db.rollback()
            log(logging.WARNING, "commit", user_id, order_id, payment_id, "concurrent replay lost the ledger insert")
            raise AlreadyProcessed()
        except Exception:
            db.rollback()
            log(logging.ERROR, "commit", user_id, order_id, payment_id, "rolled back")
            raise

        log(logging.INFO, "commit", user_id, order_id, payment_id, f"credited={package.coins} balance={total}")
        return VerificationResult(payment_id=payment_id, coins_added=package.coins, total_coins=total)
