"""
Subscription Data Models

Value types shared by the entitlement engine: status enums, billing periods,
and the computed entitlement snapshot returned to clients.
"""

from enum import Enum
from dataclasses import dataclass
from typing import Optional
from datetime import datetime


class EntitlementStatus(str, Enum):
    """Computed access status of an account"""
    TRIAL = "trial"
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELED = "canceled"


class SubscriptionRecordStatus(str, Enum):
    """Status of a single UserSubscription row"""
    ACTIVE = "active"
    CANCELED = "canceled"
    EXPIRED = "expired"
    PENDING = "pending"


class BillingPeriod(str, Enum):
    """
    Plan billing periods.

    The period decides the pass length:
    - WEEKLY: +7 days
    - MONTHLY: +1 calendar month
    - YEARLY: +1 calendar year
    - LIFETIME: never expires
    """
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"
    LIFETIME = "lifetime"


class StoryStatus(str, Enum):
    DRAFT = "draft"
    PENDING_REVIEW = "pending_review"
    PUBLISHED = "published"
    REJECTED = "rejected"


def isoformat(value: Optional[datetime]) -> Optional[str]:
    """ISO-8601 string for a stored naive-UTC timestamp"""
    if value is None:
        return None
    return value.isoformat() + "Z"


@dataclass
class SubscriptionInfo:
    """
    Entitlement snapshot for one account at one instant.

    Never persisted; recomputed on every request.
    """
    status: EntitlementStatus
    has_active_pass: bool
    trial_days_remaining: Optional[int] = None
    active_pass_end_date: Optional[datetime] = None
    coins: int = 0

    @property
    def is_expired(self) -> bool:
        return self.status == EntitlementStatus.EXPIRED

    def to_dict(self) -> dict:
        """Convert to the camelCase shape served by the API"""
        data = {
            'status': self.status.value,
            'hasActivePass': self.has_active_pass,
            'coins': self.coins,
        }
        if self.trial_days_remaining is not None:
            data['trialDaysRemaining'] = self.trial_days_remaining
        if self.active_pass_end_date is not None:
            data['activePassEndDate'] = isoformat(self.active_pass_end_date)
        return data
