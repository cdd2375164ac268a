"""
Entitlement Resolver

Computes an account's access status from its trial window and latest
subscription record. The result is recomputed on every request; the
subscription_status column on the account is only a display cache.
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from models.account import ParentSettings
from models.billing import UserSubscription
from models.database import utcnow
from subscription.models import (
    EntitlementStatus,
    SubscriptionInfo,
    SubscriptionRecordStatus,
)

logger = logging.getLogger(__name__)

ONE_DAY = timedelta(days=1)


def resolve(
    account: ParentSettings,
    latest_subscription: Optional[UserSubscription],
    now: datetime,
) -> SubscriptionInfo:
    """
    Resolve the entitlement of an account.

    Rules, first match wins:
    1. admins are always active
    2. an unexpired trial reports 'trial' with whole days remaining (rounded up)
    3. the latest subscription, if active and not past its end date
    4. otherwise expired
    """
    coins = account.coins or 0

    if account.is_admin:
        return SubscriptionInfo(
            status=EntitlementStatus.ACTIVE,
            has_active_pass=True,
            coins=coins,
        )

    if account.trial_started_at and account.trial_ends_at and now < account.trial_ends_at:
        remaining = account.trial_ends_at - now
        return SubscriptionInfo(
            status=EntitlementStatus.TRIAL,
            has_active_pass=True,
            trial_days_remaining=math.ceil(remaining / ONE_DAY),
            coins=coins,
        )

    if (
        latest_subscription is not None
        and latest_subscription.status == SubscriptionRecordStatus.ACTIVE.value
        and (latest_subscription.end_date is None or now < latest_subscription.end_date)
    ):
        return SubscriptionInfo(
            status=EntitlementStatus.ACTIVE,
            has_active_pass=True,
            active_pass_end_date=latest_subscription.end_date,
            coins=coins,
        )

    return SubscriptionInfo(
        status=EntitlementStatus.EXPIRED,
        has_active_pass=False,
        trial_days_remaining=0,
        coins=coins,
    )


def latest_subscription(db: Session, user_id: str) -> Optional[UserSubscription]:
    """Most recently created subscription row (highest id) for a user"""
    return (
        db.query(UserSubscription)
        .filter(UserSubscription.user_id == user_id)
        .order_by(UserSubscription.id.desc())
        .first()
    )


def expire_lapsed(db: Session, user_id: str, now: datetime) -> int:
    """Mark active subscriptions whose end date has passed as expired"""
    result = db.execute(
        update(UserSubscription)
        .where(
            UserSubscription.user_id == user_id,
            UserSubscription.status == SubscriptionRecordStatus.ACTIVE.value,
            UserSubscription.end_date.is_not(None),
            UserSubscription.end_date <= now,
        )
        .values(status=SubscriptionRecordStatus.EXPIRED.value)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount:
        logger.info(f"Marked {result.rowcount} lapsed subscription(s) expired for user {user_id}")
    return result.rowcount


def refresh_status_cache(db: Session, user_id: str, status: EntitlementStatus) -> None:
    db.execute(
        update(ParentSettings)
        .where(
            ParentSettings.user_id == user_id,
            ParentSettings.subscription_status != status.value,
        )
        .values(subscription_status=status.value)
        .execution_options(synchronize_session=False)
    )


def resolve_for_user(
    db: Session,
    account: ParentSettings,
    now: Optional[datetime] = None,
) -> SubscriptionInfo:
    """
    Resolve an account against the store.

    Lapsed subscriptions are marked expired and the cached status label is
    refreshed as a side effect; neither write influences the returned result.
    """
    now = now or utcnow()

    expire_lapsed(db, account.user_id, now)
    info = resolve(account, latest_subscription(db, account.user_id), now)
    refresh_status_cache(db, account.user_id, info.status)
    db.commit()

    return info
