"""
Payment Verification Pipeline Tests

Each stage is exercised against the in-memory processor. A failed stage must
leave both the coin balance and the processed-payment ledger untouched.
"""

import hashlib
import hmac
from decimal import Decimal

import pytest

from models.billing import ProcessedPayment
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
from subscription.payment_gateway import PaymentGatewayError, to_minor_units
from subscription.payment_verifier import PaymentVerificationPipeline, compute_signature
from tests.conftest import TEST_SECRET


def sign(order_id: str, payment_id: str, secret: str = TEST_SECRET) -> str:
    return hmac.new(secret.encode(), f"{order_id}|{payment_id}".encode(), hashlib.sha256).hexdigest()


@pytest.fixture
def pipeline(processor):
    return PaymentVerificationPipeline(processor, secret=TEST_SECRET, fetch_timeout=0.5)


@pytest.fixture
def buyer(make_account):
    return make_account("buyer", coins=5)


@pytest.fixture
def package(make_package):
    return make_package(coins=100, price="99.00")


def ledger_count(db) -> int:
    return db.query(ProcessedPayment).count()


# ============================================================================
# HELPERS
# ============================================================================

class TestSignatureHelpers:
    """Signature and amount helpers"""

    def test_compute_signature_matches_hmac(self):
        assert compute_signature(TEST_SECRET, "order_1", "pay_1") == sign("order_1", "pay_1")

    def test_check_signature(self, pipeline):
        assert pipeline.check_signature("order_1", "pay_1", sign("order_1", "pay_1"))
        assert not pipeline.check_signature("order_1", "pay_1", sign("order_1", "pay_2"))
        assert not pipeline.check_signature("order_1", "pay_1", None)
        assert not pipeline.check_signature("order_1", "pay_1", "")

    @pytest.mark.parametrize("price,expected", [
        (Decimal("99.00"), 9900),
        (Decimal("0.10"), 10),
        (Decimal("49.995"), 5000),
        (49, 4900),
    ])
    def test_to_minor_units(self, price, expected):
        assert to_minor_units(price) == expected


# ============================================================================
# PIPELINE
# ============================================================================

class TestVerify:
    """Stage-by-stage verification"""

    async def test_success_credits_once(self, db, pipeline, processor, buyer, package):
        processor.add_payment("pay_1", "order_1", 9900)

        result = await pipeline.verify(db, "buyer", "order_1", "pay_1", sign("order_1", "pay_1"), package.id)

        assert result.coins_added == 100
        assert result.total_coins == 105
        assert result.to_dict() == {
            "success": True,
            "message": "Payment verified and coins credited",
            "coinsAdded": 100,
            "totalCoins": 105,
        }
        row = db.query(ProcessedPayment).filter(ProcessedPayment.razorpay_payment_id == "pay_1").one()
        assert row.user_id == "buyer"
        assert row.amount == 9900
        assert row.coins_awarded == 100
        assert coin_ledger.get_balance(db, "buyer") == 105

    async def test_replay_is_rejected(self, db, pipeline, processor, buyer, package):
        processor.add_payment("pay_1", "order_1", 9900)
        signature = sign("order_1", "pay_1")
        await pipeline.verify(db, "buyer", "order_1", "pay_1", signature, package.id)

        with pytest.raises(AlreadyProcessed) as exc:
            await pipeline.verify(db, "buyer", "order_1", "pay_1", signature, package.id)

        assert exc.value.message == "Payment already processed"
        assert coin_ledger.get_balance(db, "buyer") == 105
        assert ledger_count(db) == 1

    async def test_tampered_signature(self, db, pipeline, processor, buyer, package):
        processor.add_payment("pay_1", "order_1", 9900)

        with pytest.raises(InvalidSignature):
            await pipeline.verify(db, "buyer", "order_1", "pay_1", sign("order_1", "pay_1") + "00", package.id)

        assert processor.fetch_calls == 0
        assert coin_ledger.get_balance(db, "buyer") == 5
        assert ledger_count(db) == 0

    async def test_signature_from_other_secret(self, db, pipeline, processor, buyer, package):
        processor.add_payment("pay_1", "order_1", 9900)

        with pytest.raises(InvalidSignature):
            await pipeline.verify(db, "buyer", "order_1", "pay_1",
                                  sign("order_1", "pay_1", secret="other"), package.id)

    async def test_authorized_is_not_captured(self, db, pipeline, processor, buyer, package):
        processor.add_payment("pay_1", "order_1", 9900, status="authorized")

        with pytest.raises(PaymentNotCaptured) as exc:
            await pipeline.verify(db, "buyer", "order_1", "pay_1", sign("order_1", "pay_1"), package.id)

        assert exc.value.message == "Payment verification failed"
        assert coin_ledger.get_balance(db, "buyer") == 5
        assert ledger_count(db) == 0

    async def test_order_mismatch(self, db, pipeline, processor, buyer, package):
        processor.add_payment("pay_1", "order_other", 9900)

        with pytest.raises(OrderMismatch):
            await pipeline.verify(db, "buyer", "order_1", "pay_1", sign("order_1", "pay_1"), package.id)

        assert ledger_count(db) == 0

    async def test_amount_mismatch(self, db, pipeline, processor, buyer, make_package):
        cheap = make_package(coins=10, price="9.00")
        big = make_package(coins=1000, price="499.00")
        # Paid for the cheap package, claims the big one
        processor.add_payment("pay_1", "order_1", 900)

        with pytest.raises(AmountMismatch):
            await pipeline.verify(db, "buyer", "order_1", "pay_1", sign("order_1", "pay_1"), big.id)

        assert coin_ledger.get_balance(db, "buyer") == 5
        assert ledger_count(db) == 0
        assert cheap.id != big.id

    async def test_unknown_package(self, db, pipeline, processor, buyer):
        processor.add_payment("pay_1", "order_1", 9900)

        with pytest.raises(NotFound):
            await pipeline.verify(db, "buyer", "order_1", "pay_1", sign("order_1", "pay_1"), 404)

    async def test_fetch_timeout(self, db, pipeline, processor, buyer, package):
        processor.add_payment("pay_1", "order_1", 9900)
        processor.fetch_delay = 2.0

        with pytest.raises(VerificationUnavailable) as exc:
            await pipeline.verify(db, "buyer", "order_1", "pay_1", sign("order_1", "pay_1"), package.id)

        assert exc.value.status_code == 503
        assert exc.value.context["reason"] == "timeout"
        assert coin_ledger.get_balance(db, "buyer") == 5
        assert ledger_count(db) == 0

    async def test_processor_error(self, db, pipeline, processor, buyer, package):
        processor.fetch_error = PaymentGatewayError("connection reset")

        with pytest.raises(VerificationUnavailable) as exc:
            await pipeline.verify(db, "buyer", "order_1", "pay_1", sign("order_1", "pay_1"), package.id)

        assert exc.value.context["reason"] == "processor_error"

    async def test_retry_after_unavailable_succeeds(self, db, pipeline, processor, buyer, package):
        processor.add_payment("pay_1", "order_1", 9900)
        processor.fetch_error = PaymentGatewayError("503 from processor")
        signature = sign("order_1", "pay_1")

        with pytest.raises(VerificationUnavailable):
            await pipeline.verify(db, "buyer", "order_1", "pay_1", signature, package.id)

        processor.fetch_error = None
        result = await pipeline.verify(db, "buyer", "order_1", "pay_1", signature, package.id)

        assert result.total_coins == 105

    async def test_missing_account_fails_closed(self, db, pipeline, processor, package):
        processor.add_payment("pay_1", "order_1", 9900)

        with pytest.raises(NotFound):
            await pipeline.verify(db, "ghost", "order_1", "pay_1", sign("order_1", "pay_1"), package.id)

        assert ledger_count(db) == 0
