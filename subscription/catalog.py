"""
Plan, coin package and coin price catalog.

Admin-maintained. Plans and packages are soft-deactivated by the isActive
flag; public listings only show active entries.
"""

import logging
from typing import Dict, List

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models.billing import CoinPackage, PlanCoinCost, SubscriptionPlan, UserSubscription
from models.database import utcnow
from subscription.errors import NotFound, ValidationFailed
from subscription.models import BillingPeriod, isoformat

logger = logging.getLogger(__name__)

PLAN_FIELDS = (
    "name", "description", "price", "currency", "billing_period",
    "features", "is_active", "max_stories",
)
PACKAGE_FIELDS = ("name", "description", "coins", "price", "currency", "is_active")


def _money(value) -> str:
    return f"{value:.2f}"


# ============================================================================
# Serialization
# ============================================================================

def plan_to_dict(plan: SubscriptionPlan, public: bool = False) -> dict:
    data = {
        "id": plan.id,
        "name": plan.name,
        "description": plan.description,
        "price": _money(plan.price),
        "currency": plan.currency,
        "billingPeriod": plan.billing_period,
        "features": list(plan.features or []),
        "maxStories": plan.max_stories,
    }
    if not public:
        data.update({
            "isActive": plan.is_active,
            "createdAt": isoformat(plan.created_at),
            "updatedAt": isoformat(plan.updated_at),
        })
    return data


def package_to_dict(package: CoinPackage, public: bool = False) -> dict:
    data = {
        "id": package.id,
        "name": package.name,
        "description": package.description,
        "coins": package.coins,
        "price": _money(package.price),
        "currency": package.currency,
    }
    if not public:
        data.update({
            "isActive": package.is_active,
            "createdAt": isoformat(package.created_at),
            "updatedAt": isoformat(package.updated_at),
        })
    return data


def coin_cost_to_dict(cost: PlanCoinCost, public: bool = False) -> dict:
    data = {"planId": cost.plan_id, "coinCost": cost.coin_cost}
    if not public:
        data.update({
            "id": cost.id,
            "createdAt": isoformat(cost.created_at),
            "updatedAt": isoformat(cost.updated_at),
        })
    return data


# ============================================================================
# Subscription plans
# ============================================================================

def list_plans(db: Session, active_only: bool = False) -> List[SubscriptionPlan]:
    query = db.query(SubscriptionPlan)
    if active_only:
        query = query.filter(SubscriptionPlan.is_active.is_(True))
    return query.order_by(SubscriptionPlan.price, SubscriptionPlan.id).all()


def _check_period(fields: Dict) -> None:
    period = fields.get("billing_period")
    if period is not None and period not in {p.value for p in BillingPeriod}:
        raise ValidationFailed(f"Unknown billing period: {period}")


def create_plan(db: Session, fields: Dict) -> SubscriptionPlan:
    _check_period(fields)
    plan = SubscriptionPlan(**{k: v for k, v in fields.items() if k in PLAN_FIELDS})
    db.add(plan)
    db.commit()
    logger.info(f"Created plan {plan.id} ({plan.name}, {plan.billing_period})")
    return plan


def update_plan(db: Session, plan_id: int, fields: Dict) -> SubscriptionPlan:
    plan = db.get(SubscriptionPlan, plan_id)
    if plan is None:
        raise NotFound("Plan not found")
    _check_period(fields)

    for key, value in fields.items():
        if key in PLAN_FIELDS and value is not None:
            setattr(plan, key, value)
    plan.updated_at = utcnow()
    db.commit()
    logger.info(f"Updated plan {plan_id}: {sorted(k for k, v in fields.items() if v is not None)}")
    return plan


def delete_plan(db: Session, plan_id: int) -> None:
    """
    Delete a plan that no subscription references, otherwise deactivate it.

    Subscription history keeps pointing at the plan it was bought from.
    """
    plan = db.get(SubscriptionPlan, plan_id)
    if plan is None:
        raise NotFound("Plan not found")

    referenced = db.query(UserSubscription.id).filter(UserSubscription.plan_id == plan_id).first()
    if referenced:
        plan.is_active = False
        plan.updated_at = utcnow()
        db.commit()
        logger.info(f"Plan {plan_id} is referenced by subscriptions; deactivated instead of deleted")
        return

    db.query(PlanCoinCost).filter(PlanCoinCost.plan_id == plan_id).delete(synchronize_session=False)
    db.delete(plan)
    db.commit()
    logger.info(f"Deleted plan {plan_id}")


# ============================================================================
# Coin packages
# ============================================================================

def list_packages(db: Session, active_only: bool = False) -> List[CoinPackage]:
    query = db.query(CoinPackage)
    if active_only:
        query = query.filter(CoinPackage.is_active.is_(True))
    return query.order_by(CoinPackage.coins, CoinPackage.id).all()


def create_package(db: Session, fields: Dict) -> CoinPackage:
    package = CoinPackage(**{k: v for k, v in fields.items() if k in PACKAGE_FIELDS})
    db.add(package)
    db.commit()
    logger.info(f"Created coin package {package.id} ({package.coins} coins for {package.price} {package.currency})")
    return package


def update_package(db: Session, package_id: int, fields: Dict) -> CoinPackage:
    package = db.get(CoinPackage, package_id)
    if package is None:
        raise NotFound("Coin package not found")

    for key, value in fields.items():
        if key in PACKAGE_FIELDS and value is not None:
            setattr(package, key, value)
    package.updated_at = utcnow()
    db.commit()
    return package


def delete_package(db: Session, package_id: int) -> None:
    package = db.get(CoinPackage, package_id)
    if package is None:
        raise NotFound("Coin package not found")
    db.delete(package)
    db.commit()
    logger.info(f"Deleted coin package {package_id}")


# ============================================================================
# Plan coin costs
# ============================================================================

def list_coin_costs(db: Session, purchasable_only: bool = False) -> List[PlanCoinCost]:
    query = db.query(PlanCoinCost)
    if purchasable_only:
        query = query.filter(PlanCoinCost.coin_cost > 0)
    return query.order_by(PlanCoinCost.plan_id).all()


def set_plan_coin_cost(db: Session, plan_id: int, coin_cost: int) -> PlanCoinCost:
    """Upsert the coin price of a plan (one row per plan)"""
    if coin_cost < 0:
        raise ValidationFailed("coinCost must not be negative")
    if db.get(SubscriptionPlan, plan_id) is None:
        raise NotFound("Subscription plan not found")

    now = utcnow()
    for _ in range(2):
        cost = db.query(PlanCoinCost).filter(PlanCoinCost.plan_id == plan_id).first()
        if cost is None:
            cost = PlanCoinCost(plan_id=plan_id, coin_cost=coin_cost, created_at=now, updated_at=now)
            db.add(cost)
        else:
            cost.coin_cost = coin_cost
            cost.updated_at = now
        try:
            db.commit()
            break
        except IntegrityError:
            # Concurrent insert for the same plan; update that row instead
            db.rollback()
    else:
        raise ValidationFailed("Could not save plan coin cost, please retry")

    logger.info(f"Plan {plan_id} coin cost set to {coin_cost}")
    return cost
