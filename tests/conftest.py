"""
Pytest Configuration and Shared Fixtures

Every test gets a fresh SQLite database file. Firebase token verification is
replaced by a fake that treats the bearer token as the user id, and the
Razorpay client is replaced by an in-memory processor.
"""

import asyncio
import os
import tempfile
from datetime import timedelta
from decimal import Decimal
from typing import Dict, Optional

# Must be set before config.settings is first imported
os.environ.setdefault("DATABASE_URL", f"sqlite:///{tempfile.gettempdir()}/storytime-import.db")
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["RAZORPAY_KEY_ID"] = "rzp_test_key"
os.environ["RAZORPAY_KEY_SECRET"] = "test_secret"
os.environ["PIN_HASH_ITERATIONS"] = "1000"

import pytest

from models.account import ParentSettings
from models.billing import CoinPackage, PlanCoinCost, SubscriptionPlan
from models.database import SessionLocal, configure_database, init_db, utcnow
from subscription.payment_gateway import (
    OrderDescriptor,
    PaymentGatewayError,
    PaymentProcessor,
    ProcessorPayment,
    get_payment_processor,
)

TEST_SECRET = "test_secret"


# ============================================================================
# FAKE PAYMENT PROCESSOR
# ============================================================================

class FakeProcessor(PaymentProcessor):
    """In-memory processor; payments are registered by the test"""

    name = "fake"

    def __init__(self):
        self.payments: Dict[str, ProcessorPayment] = {}
        self.orders = []
        self.fetch_calls = 0
        self.fetch_delay = 0.0
        self.fetch_error: Optional[Exception] = None

    def add_payment(
        self,
        payment_id: str,
        order_id: str,
        amount: int,
        status: str = "captured",
        currency: str = "INR",
    ) -> ProcessorPayment:
        payment = ProcessorPayment(
            payment_id=payment_id,
            status=status,
            order_id=order_id,
            amount=amount,
            currency=currency,
        )
        self.payments[payment_id] = payment
        return payment

    async def create_order(self, amount: int, currency: str, notes: Dict[str, str]) -> OrderDescriptor:
        order = OrderDescriptor(
            order_id=f"order_test_{len(self.orders) + 1}",
            amount=amount,
            currency=currency,
        )
        self.orders.append((order, notes))
        return order

    async def fetch_payment(self, payment_id: str) -> ProcessorPayment:
        self.fetch_calls += 1
        if self.fetch_delay:
            await asyncio.sleep(self.fetch_delay)
        if self.fetch_error is not None:
            raise self.fetch_error
        if payment_id not in self.payments:
            raise PaymentGatewayError(f"payment {payment_id} does not exist")
        return self.payments[payment_id]


# ============================================================================
# DATABASE FIXTURES
# ============================================================================

@pytest.fixture
def database(tmp_path):
    """Fresh database file for one test"""
    engine = configure_database(f"sqlite:///{tmp_path / 'storytime-test.db'}")
    init_db()
    yield engine
    engine.dispose()


@pytest.fixture
def db(database):
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_account(db):
    """Create an account row directly (bypasses the admin bootstrap)"""

    def _make(
        user_id: str,
        coins: int = 0,
        is_admin: bool = False,
        is_blocked: bool = False,
        trial_days: Optional[int] = 7,
        trial_ended: bool = False,
    ) -> ParentSettings:
        now = utcnow()
        if trial_days is None:
            started, ends = None, None
        elif trial_ended:
            started, ends = now - timedelta(days=trial_days + 1), now - timedelta(days=1)
        else:
            started, ends = now, now + timedelta(days=trial_days)

        account = ParentSettings(
            user_id=user_id,
            pin_hash="00:00",
            reading_time_limit=30,
            fullscreen_lock_enabled=True,
            theme="day",
            is_admin=is_admin,
            is_blocked=is_blocked,
            coins=coins,
            trial_started_at=started,
            trial_ends_at=ends,
            subscription_status="trial",
            created_at=now,
        )
        db.add(account)
        db.commit()
        return account

    return _make


@pytest.fixture
def make_plan(db):
    def _make(
        billing_period: str = "monthly",
        coin_cost: Optional[int] = None,
        is_active: bool = True,
        price: str = "199.00",
        name: str = "Monthly Pass",
    ) -> SubscriptionPlan:
        plan = SubscriptionPlan(
            name=name,
            description="",
            price=Decimal(price),
            currency="INR",
            billing_period=billing_period,
            features=["All stories"],
            is_active=is_active,
        )
        db.add(plan)
        db.flush()
        if coin_cost is not None:
            db.add(PlanCoinCost(plan_id=plan.id, coin_cost=coin_cost))
        db.commit()
        return plan

    return _make


@pytest.fixture
def make_package(db):
    def _make(coins: int = 100, price: str = "99.00", is_active: bool = True) -> CoinPackage:
        package = CoinPackage(
            name=f"{coins} coins",
            description="",
            coins=coins,
            price=Decimal(price),
            currency="INR",
            is_active=is_active,
        )
        db.add(package)
        db.commit()
        return package

    return _make


# ============================================================================
# API FIXTURES
# ============================================================================

@pytest.fixture
def processor():
    return FakeProcessor()


@pytest.fixture
def client(database, processor, monkeypatch):
    """TestClient with fake identity and payment processor"""
    from fastapi.testclient import TestClient

    from web_ui.api.main import app
    from web_ui.api.middleware import auth
    from web_ui.api.middleware.rate_limit import rate_limiter

    async def fake_verify(token: str):
        if token == "invalid":
            return None
        return {"uid": token, "email": f"{token}@example.com", "email_verified": True}

    monkeypatch.setattr(auth, "verify_firebase_token", fake_verify)
    app.dependency_overrides[get_payment_processor] = lambda: processor
    rate_limiter.reset()

    yield TestClient(app)

    app.dependency_overrides.clear()
    rate_limiter.reset()


def auth_headers(uid: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {uid}"}


# ============================================================================
# PYTEST CONFIGURATION
# ============================================================================

def pytest_configure(config):
    """Configure pytest markers"""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (may take several seconds)"
    )
