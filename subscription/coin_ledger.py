"""
Coin Ledger Operations

All balance changes are relative single-statement UPDATEs. Debits carry a
`coins >= cost` predicate and are checked by affected-row count, so two
concurrent spends can never take the balance below zero.

Every mutation is written to the audit log with user id, delta, reason and
the resulting balance.
"""

import logging
from datetime import datetime
from typing import Optional, Tuple

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from config import settings
from models.account import ParentSettings
from models.billing import CoinSettings, PlanCoinCost, SubscriptionPlan, UserSubscription
from models.database import utcnow
from subscription import lifecycle
from subscription.errors import (
    InsufficientCoins,
    NotFound,
    PlanNotPurchasable,
    ValidationFailed,
)

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("storytime.audit.coins")


# ============================================================================
# Coin settings
# ============================================================================

def get_coin_settings(db: Session) -> CoinSettings:
    """Return the single coin settings row, creating it with defaults on first use"""
    row = db.query(CoinSettings).order_by(CoinSettings.id).first()
    if row is None:
        row = CoinSettings(coins_per_story=settings.DEFAULT_COINS_PER_STORY)
        db.add(row)
        db.commit()
    return row


def get_coins_per_story(db: Session) -> int:
    return get_coin_settings(db).coins_per_story


def set_coins_per_story(db: Session, coins_per_story: int) -> CoinSettings:
    if coins_per_story < 1:
        raise ValidationFailed("coinsPerStory must be at least 1")

    row = get_coin_settings(db)
    row.coins_per_story = coins_per_story
    row.updated_at = utcnow()
    db.commit()

    logger.info(f"Coins per story set to {coins_per_story}")
    return row


# ============================================================================
# Ledger mutations
# ============================================================================

def get_balance(db: Session, user_id: str) -> Optional[int]:
    return db.execute(
        select(ParentSettings.coins).where(ParentSettings.user_id == user_id)
    ).scalar_one_or_none()


def _audit(user_id: str, delta: int, reason: str, balance: int) -> None:
    audit_logger.info(f"user={user_id} delta={delta:+d} reason={reason} balance={balance}")


def _credit(db: Session, user_id: str, amount: int, reason: str) -> int:
    """Relative credit inside the caller's transaction; returns the new balance"""
    if amount <= 0:
        raise ValidationFailed("Credit amount must be positive")

    result = db.execute(
        update(ParentSettings)
        .where(ParentSettings.user_id == user_id)
        .values(coins=ParentSettings.coins + amount)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        raise NotFound("User settings not found")

    balance = get_balance(db, user_id)
    _audit(user_id, amount, reason, balance)
    return balance


def earn_on_approval(db: Session, user_id: str, amount: int, story_id: Optional[int] = None) -> int:
    """Credit the author of an approved story. The caller commits."""
    reason = f"story_approved:{story_id}" if story_id is not None else "story_approved"
    return _credit(db, user_id, amount, reason)


def credit_from_purchase(db: Session, user_id: str, package_id: int, amount: int) -> int:
    """Credit coins for a verified payment. The caller commits."""
    return _credit(db, user_id, amount, f"coin_package:{package_id}")


def grant_coins(db: Session, admin_id: str, user_id: str, amount: int) -> int:
    """Admin grant; committed immediately"""
    balance = _credit(db, user_id, amount, f"admin_grant:{admin_id}")
    db.commit()
    return balance


def spend_on_redeem(
    db: Session,
    user_id: str,
    plan_id: int,
    now: Optional[datetime] = None,
) -> Tuple[UserSubscription, int]:
    """
    Redeem coins for a plan.

    Preconditions are checked before anything is written. The debit and the
    new subscription row are committed together; if the conditional debit
    matches no row (a concurrent spend got there first) nothing is written.

    Returns the new subscription and the remaining balance.
    """
    now = now or utcnow()

    plan = db.get(SubscriptionPlan, plan_id)
    if plan is None or not plan.is_active:
        raise NotFound("Plan not found")

    cost_row = db.query(PlanCoinCost).filter(PlanCoinCost.plan_id == plan_id).first()
    if cost_row is None or cost_row.coin_cost <= 0:
        raise PlanNotPurchasable()
    cost = cost_row.coin_cost

    balance = get_balance(db, user_id)
    if balance is None:
        raise NotFound("User settings not found")
    if balance < cost:
        logger.info(f"Redeem rejected for user {user_id}: plan={plan_id} cost={cost} balance={balance}")
        raise InsufficientCoins(required=cost, available=balance)

    try:
        result = db.execute(
            update(ParentSettings)
            .where(ParentSettings.user_id == user_id, ParentSettings.coins >= cost)
            .values(coins=ParentSettings.coins - cost)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            db.rollback()
            available = get_balance(db, user_id) or 0
            logger.info(
                f"Redeem lost a concurrent debit for user {user_id}: plan={plan_id} "
                f"cost={cost} balance={available}"
            )
            raise InsufficientCoins(required=cost, available=available)

        subscription = lifecycle.activate(db, user_id, plan, now)
        remaining = get_balance(db, user_id)
        db.commit()
    except InsufficientCoins:
        raise
    except Exception:
        db.rollback()
        raise

    _audit(user_id, -cost, f"redeem_plan:{plan_id}:subscription:{subscription.id}", remaining)
    return subscription, remaining
