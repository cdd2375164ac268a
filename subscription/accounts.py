"""
Account (Settings Store) operations.

Covers settings creation with the one-time admin bootstrap, trial
activation, and admin-only privilege changes. Server-controlled fields
(admin and blocked flags, coins, trial window, status cache) are never taken
from client input.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from config import settings
from models.account import ADMIN_BOOTSTRAP_FLAG, ParentSettings, SystemFlag
from models.database import utcnow
from subscription.errors import Forbidden, NotFound
from subscription.models import EntitlementStatus, isoformat

logger = logging.getLogger(__name__)


@dataclass
class SettingsUpdate:
    """Allow-listed fields a user may write on their own account"""
    pin_hash: str
    reading_time_limit: int
    fullscreen_lock_enabled: bool
    theme: str


@dataclass
class TrialActivation:
    activated: bool
    trial_ends_at: Optional[datetime]

    @property
    def message(self) -> str:
        return "Trial activated successfully" if self.activated else "Trial already activated"


def get_account(db: Session, user_id: str) -> Optional[ParentSettings]:
    return db.get(ParentSettings, user_id)


def _apply_update(account: ParentSettings, data: SettingsUpdate) -> None:
    account.pin_hash = data.pin_hash
    account.reading_time_limit = data.reading_time_limit
    account.fullscreen_lock_enabled = data.fullscreen_lock_enabled
    account.theme = data.theme


def create_or_update_settings(
    db: Session,
    user_id: str,
    data: SettingsUpdate,
    now: Optional[datetime] = None,
) -> ParentSettings:
    """
    Create the account on first call, otherwise update PIN and preferences.

    On creation the trial window starts immediately. If no account exists yet
    the new one also claims the admin bootstrap flag; the flag's primary key
    guarantees that only one concurrent first signup becomes admin.
    """
    now = now or utcnow()

    for attempt in range(3):
        account = get_account(db, user_id)
        if account is not None:
            _apply_update(account, data)
            db.commit()
            logger.info(f"Updated settings for user {user_id}")
            return account

        is_first_user = (
            db.query(func.count(ParentSettings.user_id)).scalar() == 0
            and db.get(SystemFlag, ADMIN_BOOTSTRAP_FLAG) is None
        )

        account = ParentSettings(
            user_id=user_id,
            is_admin=is_first_user,
            is_blocked=False,
            coins=0,
            trial_started_at=now,
            trial_ends_at=now + timedelta(days=settings.TRIAL_DAYS),
            subscription_status=EntitlementStatus.TRIAL.value,
            created_at=now,
        )
        _apply_update(account, data)
        db.add(account)
        if is_first_user:
            db.add(SystemFlag(key=ADMIN_BOOTSTRAP_FLAG, value=user_id, created_at=now))

        try:
            db.commit()
        except IntegrityError:
            # Either this user's row or the bootstrap flag was written concurrently
            db.rollback()
            logger.info(f"Settings creation for user {user_id} raced (attempt {attempt + 1}); retrying")
            continue

        if is_first_user:
            logger.warning(f"First account {user_id} promoted to admin")
        logger.info(f"Created settings for user {user_id}; trial ends {account.trial_ends_at}")
        return account

    raise RuntimeError(f"Could not create settings for user {user_id}")


def activate_trial(db: Session, user_id: str, now: Optional[datetime] = None) -> TrialActivation:
    """Start the trial if it was never started; repeated calls are no-ops"""
    now = now or utcnow()

    account = get_account(db, user_id)
    if account is None:
        raise NotFound("User settings not found")

    trial_ends_at = now + timedelta(days=settings.TRIAL_DAYS)
    result = db.execute(
        update(ParentSettings)
        .where(ParentSettings.user_id == user_id, ParentSettings.trial_started_at.is_(None))
        .values(
            trial_started_at=now,
            trial_ends_at=trial_ends_at,
            subscription_status=EntitlementStatus.TRIAL.value,
        )
        .execution_options(synchronize_session=False)
    )
    db.commit()

    if result.rowcount:
        logger.info(f"Trial activated for user {user_id}; ends {trial_ends_at}")
        return TrialActivation(activated=True, trial_ends_at=trial_ends_at)

    db.refresh(account)
    return TrialActivation(activated=False, trial_ends_at=account.trial_ends_at)


# ============================================================================
# Admin privilege control
# ============================================================================

def _require_admin_caller(db: Session, caller_id: str) -> None:
    # Read fresh on every call; the caller's flag may have changed since login
    is_admin = db.query(ParentSettings.is_admin).filter(ParentSettings.user_id == caller_id).scalar()
    if not is_admin:
        logger.warning(f"Non-admin user {caller_id} attempted a privileged action")
        raise Forbidden("Admin access required")


def _set_flag(db: Session, caller_id: str, target_id: str, column: str, value: bool) -> ParentSettings:
    _require_admin_caller(db, caller_id)

    target = get_account(db, target_id)
    if target is None:
        raise NotFound("User not found")

    setattr(target, column, value)
    db.commit()

    logger.warning(f"Admin {caller_id} set {column}={value} on user {target_id}")
    return target


def set_admin(db: Session, caller_id: str, target_id: str, value: bool) -> ParentSettings:
    return _set_flag(db, caller_id, target_id, "is_admin", value)


def set_blocked(db: Session, caller_id: str, target_id: str, value: bool) -> ParentSettings:
    return _set_flag(db, caller_id, target_id, "is_blocked", value)


def account_to_dict(account: ParentSettings) -> dict:
    """Public view of an account; the PIN hash is never included"""
    return {
        "userId": account.user_id,
        "readingTimeLimit": account.reading_time_limit,
        "fullscreenLockEnabled": account.fullscreen_lock_enabled,
        "theme": account.theme,
        "isAdmin": account.is_admin,
        "isBlocked": account.is_blocked,
        "coins": account.coins,
        "trialStartedAt": isoformat(account.trial_started_at),
        "trialEndsAt": isoformat(account.trial_ends_at),
        "subscriptionStatus": account.subscription_status,
        "createdAt": isoformat(account.created_at),
    }
