# models/billing.py
from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
)

from models.database import Base, utcnow


class SubscriptionPlan(Base):
    __tablename__ = "subscription_plans"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    price = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="USD")
    billing_period = Column(String(20), nullable=False)  # weekly / monthly / yearly / lifetime
    features = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, nullable=False, default=True)
    max_stories = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class UserSubscription(Base):
    """Append-only pass history; the row with the highest id is the current one"""
    __tablename__ = "user_subscriptions"
    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(128), index=True, nullable=False)
    plan_id = Column(Integer, ForeignKey("subscription_plans.id", ondelete="SET NULL"), nullable=True)
    status = Column(String(20), nullable=False, default="active")  # active / canceled / expired / pending
    start_date = Column(DateTime, nullable=False, default=utcnow)
    end_date = Column(DateTime, nullable=True)  # NULL = never expires (lifetime)
    canceled_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)


class CoinSettings(Base):
    __tablename__ = "coin_settings"
    id = Column(Integer, primary_key=True, autoincrement=True)
    coins_per_story = Column(Integer, nullable=False, default=10)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class PlanCoinCost(Base):
    __tablename__ = "plan_coin_costs"
    id = Column(Integer, primary_key=True, autoincrement=True)
    plan_id = Column(Integer, ForeignKey("subscription_plans.id", ondelete="CASCADE"),
                     unique=True, index=True, nullable=False)
    coin_cost = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class CoinPackage(Base):
    __tablename__ = "coin_packages"
    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=False, default="")
    coins = Column(Integer, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    currency = Column(String(3), nullable=False, default="INR")
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)


class ProcessedPayment(Base):
    """Idempotency ledger: one row per processor payment id, ever"""
    __tablename__ = "processed_payments"
    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String(128), index=True, nullable=False)
    razorpay_payment_id = Column(String(100), unique=True, index=True, nullable=False)
    razorpay_order_id = Column(String(100), nullable=False)
    amount = Column(Integer, nullable=False)  # minor units (paise / cents)
    currency = Column(String(3), nullable=False)
    coin_package_id = Column(Integer, nullable=False)
    coins_awarded = Column(Integer, nullable=False)
    processed_at = Column(DateTime, nullable=False, default=utcnow)
