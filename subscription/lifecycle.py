"""
Subscription Lifecycle Manager

Creates time-boxed passes from plan definitions and handles cancellation.
Subscription history is append-only: activation always inserts a new row.
"""

import calendar
import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from models.billing import SubscriptionPlan, UserSubscription
from models.database import utcnow
from subscription.errors import NotFound, ValidationFailed
from subscription.models import BillingPeriod, SubscriptionRecordStatus, isoformat

logger = logging.getLogger(__name__)


def add_months(start: datetime, months: int) -> datetime:
    """Calendar month addition; the day is clamped to the end of the target month"""
    month_index = start.month - 1 + months
    year = start.year + month_index // 12
    month = month_index % 12 + 1
    day = min(start.day, calendar.monthrange(year, month)[1])
    return start.replace(year=year, month=month, day=day)


def compute_end_date(billing_period: str, start: datetime) -> Optional[datetime]:
    """End of a pass started at `start`; None means it never expires"""
    try:
        period = BillingPeriod(billing_period)
    except ValueError:
        raise ValidationFailed(f"Unknown billing period: {billing_period}")

    if period == BillingPeriod.WEEKLY:
        return start + timedelta(days=7)
    if period == BillingPeriod.MONTHLY:
        return add_months(start, 1)
    if period == BillingPeriod.YEARLY:
        return add_months(start, 12)
    return None


def activate(
    db: Session,
    user_id: str,
    plan: SubscriptionPlan,
    now: Optional[datetime] = None,
) -> UserSubscription:
    """
    Add a new active subscription row for a plan.

    The row is flushed but not committed so callers can make it part of a
    larger transaction (e.g. together with a coin debit).
    """
    now = now or utcnow()

    subscription = UserSubscription(
        user_id=user_id,
        plan_id=plan.id,
        status=SubscriptionRecordStatus.ACTIVE.value,
        start_date=now,
        end_date=compute_end_date(plan.billing_period, now),
        created_at=now,
    )
    db.add(subscription)
    db.flush()

    logger.info(
        f"Activated subscription {subscription.id} for user {user_id}: plan={plan.id} "
        f"period={plan.billing_period} end={subscription.end_date}"
    )
    return subscription


def cancel_latest(db: Session, user_id: str, now: Optional[datetime] = None) -> UserSubscription:
    """Cancel the user's most recent active subscription; access ends immediately"""
    now = now or utcnow()

    subscription = (
        db.query(UserSubscription)
        .filter(
            UserSubscription.user_id == user_id,
            UserSubscription.status == SubscriptionRecordStatus.ACTIVE.value,
        )
        .order_by(UserSubscription.id.desc())
        .first()
    )
    if subscription is None:
        raise NotFound("No active subscription found")

    subscription.status = SubscriptionRecordStatus.CANCELED.value
    subscription.canceled_at = now
    db.commit()

    logger.info(f"Canceled subscription {subscription.id} for user {user_id}")
    return subscription


def subscription_to_dict(subscription: UserSubscription) -> dict:
    return {
        "id": subscription.id,
        "userId": subscription.user_id,
        "planId": subscription.plan_id,
        "status": subscription.status,
        "startDate": isoformat(subscription.start_date),
        "endDate": isoformat(subscription.end_date),
        "canceledAt": isoformat(subscription.canceled_at),
        "createdAt": isoformat(subscription.created_at),
    }
