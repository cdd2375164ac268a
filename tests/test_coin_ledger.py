"""
Coin Ledger Tests

Earn, spend and purchase credits, including the non-negative balance
guarantee under concurrent redemption.
"""

import logging
import threading
from datetime import datetime

import pytest

from models.billing import UserSubscription
from models.database import SessionLocal
from subscription import coin_ledger
from subscription.errors import (
    InsufficientCoins,
    NotFound,
    PlanNotPurchasable,
    ValidationFailed,
)


# ============================================================================
# REDEEM
# ============================================================================

class TestSpendOnRedeem:
    """Redeeming coins for a plan"""

    def test_exact_balance_then_insufficient(self, db, make_account, make_plan):
        make_account("u1", coins=50)
        plan = make_plan("monthly", coin_cost=50)

        sub, remaining = coin_ledger.spend_on_redeem(db, "u1", plan.id)

        assert remaining == 0
        assert sub.status == "active"
        assert coin_ledger.get_balance(db, "u1") == 0

        with pytest.raises(InsufficientCoins) as exc:
            coin_ledger.spend_on_redeem(db, "u1", plan.id)
        assert exc.value.context == {"required": 50, "available": 0}
        assert coin_ledger.get_balance(db, "u1") == 0

    def test_monthly_end_date(self, db, make_account, make_plan):
        make_account("u1", coins=100)
        plan = make_plan("monthly", coin_cost=30)
        now = datetime(2024, 3, 31, 10, 0)

        sub, remaining = coin_ledger.spend_on_redeem(db, "u1", plan.id, now)

        assert sub.start_date == now
        assert sub.end_date == datetime(2024, 4, 30, 10, 0)
        assert remaining == 70

    def test_lifetime_has_no_end(self, db, make_account, make_plan):
        make_account("u1", coins=500)
        plan = make_plan("lifetime", coin_cost=500)

        sub, _ = coin_ledger.spend_on_redeem(db, "u1", plan.id)

        assert sub.end_date is None

    def test_no_cost_row(self, db, make_account, make_plan):
        make_account("u1", coins=1000)
        plan = make_plan("monthly", coin_cost=None)

        with pytest.raises(PlanNotPurchasable):
            coin_ledger.spend_on_redeem(db, "u1", plan.id)
        assert coin_ledger.get_balance(db, "u1") == 1000

    def test_zero_cost(self, db, make_account, make_plan):
        make_account("u1", coins=1000)
        plan = make_plan("monthly", coin_cost=0)

        with pytest.raises(PlanNotPurchasable):
            coin_ledger.spend_on_redeem(db, "u1", plan.id)

    def test_insufficient_writes_nothing(self, db, make_account, make_plan):
        make_account("u1", coins=10)
        plan = make_plan("weekly", coin_cost=20)

        with pytest.raises(InsufficientCoins) as exc:
            coin_ledger.spend_on_redeem(db, "u1", plan.id)

        assert exc.value.status_code == 400
        assert exc.value.to_dict()["required"] == 20
        assert exc.value.to_dict()["available"] == 10
        assert coin_ledger.get_balance(db, "u1") == 10
        assert db.query(UserSubscription).count() == 0

    def test_missing_plan(self, db, make_account):
        make_account("u1", coins=10)
        with pytest.raises(NotFound):
            coin_ledger.spend_on_redeem(db, "u1", 999)

    def test_inactive_plan(self, db, make_account, make_plan):
        make_account("u1", coins=100)
        plan = make_plan("monthly", coin_cost=10, is_active=False)
        with pytest.raises(NotFound):
            coin_ledger.spend_on_redeem(db, "u1", plan.id)

    def test_missing_account(self, db, make_plan):
        plan = make_plan("monthly", coin_cost=10)
        with pytest.raises(NotFound):
            coin_ledger.spend_on_redeem(db, "ghost", plan.id)

    @pytest.mark.slow
    def test_concurrent_spends_never_go_negative(self, db, make_account, make_plan):
        """Five simultaneous 20-coin redemptions against 50 coins: exactly two win"""
        make_account("u1", coins=50)
        plan = make_plan("weekly", coin_cost=20)
        plan_id = plan.id

        barrier = threading.Barrier(5)
        outcomes = []
        lock = threading.Lock()

        def redeem():
            session = SessionLocal()
            try:
                barrier.wait()
                coin_ledger.spend_on_redeem(session, "u1", plan_id)
                result = "ok"
            except InsufficientCoins:
                result = "insufficient"
            except Exception as e:  # surfaced through the assertion below
                result = repr(e)
            finally:
                session.close()
            with lock:
                outcomes.append(result)

        threads = [threading.Thread(target=redeem) for _ in range(5)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=60)

        assert sorted(outcomes) == ["insufficient"] * 3 + ["ok"] * 2
        assert coin_ledger.get_balance(db, "u1") == 10
        assert db.query(UserSubscription).filter(UserSubscription.user_id == "u1").count() == 2


# ============================================================================
# CREDITS
# ============================================================================

class TestCredits:
    """Earn, purchase and admin credits"""

    def test_earn_on_approval(self, db, make_account):
        make_account("author", coins=5)

        balance = coin_ledger.earn_on_approval(db, "author", 10, story_id=7)
        db.commit()

        assert balance == 15
        assert coin_ledger.get_balance(db, "author") == 15

    def test_credit_unknown_user(self, db):
        with pytest.raises(NotFound):
            coin_ledger.credit_from_purchase(db, "ghost", 1, 100)

    def test_credit_must_be_positive(self, db, make_account):
        make_account("u1")
        with pytest.raises(ValidationFailed):
            coin_ledger.grant_coins(db, "admin", "u1", 0)

    def test_grant_is_relative_and_audited(self, db, make_account, caplog):
        make_account("u1", coins=3)
        caplog.set_level(logging.INFO, logger="storytime.audit.coins")

        assert coin_ledger.grant_coins(db, "admin", "u1", 5) == 8
        assert coin_ledger.grant_coins(db, "admin", "u1", 5) == 13

        audit = [r.getMessage() for r in caplog.records if r.name == "storytime.audit.coins"]
        assert audit[-1] == "user=u1 delta=+5 reason=admin_grant:admin balance=13"

    def test_redeem_is_audited(self, db, make_account, make_plan, caplog):
        make_account("u1", coins=40)
        plan = make_plan("weekly", coin_cost=15)
        caplog.set_level(logging.INFO, logger="storytime.audit.coins")

        sub, _ = coin_ledger.spend_on_redeem(db, "u1", plan.id)

        audit = [r.getMessage() for r in caplog.records if r.name == "storytime.audit.coins"]
        assert audit[-1] == f"user=u1 delta=-15 reason=redeem_plan:{plan.id}:subscription:{sub.id} balance=25"


# ============================================================================
# COIN SETTINGS
# ============================================================================

class TestCoinSettings:
    """Global coins-per-story setting"""

    def test_default_created_on_first_read(self, db):
        assert coin_ledger.get_coins_per_story(db) == 10

    def test_update(self, db):
        coin_ledger.set_coins_per_story(db, 25)
        db.expire_all()
        assert coin_ledger.get_coins_per_story(db) == 25

    def test_must_be_at_least_one(self, db):
        with pytest.raises(ValidationFailed):
            coin_ledger.set_coins_per_story(db, 0)
