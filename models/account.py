from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text

from models.database import Base, utcnow

# Key of the single SystemFlag row that records which account was bootstrapped as admin
ADMIN_BOOTSTRAP_FLAG = "admin_bootstrap"


class ParentSettings(Base):
    """
    Per-user account row (the Settings Store).

    coins is only ever changed with relative UPDATE statements.
    subscription_status is a display cache; access decisions recompute it.
    """
    __tablename__ = "parent_settings"

    user_id = Column(String(128), primary_key=True)
    pin_hash = Column(Text, nullable=False)
    reading_time_limit = Column(Integer, nullable=False, default=30)
    fullscreen_lock_enabled = Column(Boolean, nullable=False, default=True)
    theme = Column(String(10), nullable=False, default="day")

    is_admin = Column(Boolean, nullable=False, default=False)
    is_blocked = Column(Boolean, nullable=False, default=False)

    coins = Column(Integer, nullable=False, default=0)
    trial_started_at = Column(DateTime, nullable=True)
    trial_ends_at = Column(DateTime, nullable=True)
    subscription_status = Column(String(20), nullable=False, default="trial")

    created_at = Column(DateTime, nullable=False, default=utcnow)


class SystemFlag(Base):
    """One-time markers guarded by the primary key (e.g. the admin bootstrap)"""
    __tablename__ = "system_flags"

    key = Column(String(64), primary_key=True)
    value = Column(String(255), nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
