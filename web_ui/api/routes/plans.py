"""
Catalog API Routes for StoryTime

Public listings of subscription plans, coin packages and coin prices,
plus the admin endpoints that maintain them.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from models.database import get_db
from subscription import catalog
from utils.logger import logger
from web_ui.api.middleware.auth import AuthenticatedUser, require_admin
from web_ui.api.schemas.billing_schemas import (
    CoinPackageCreateRequest,
    CoinPackageUpdateRequest,
    PlanCreateRequest,
    PlanUpdateRequest,
)
from web_ui.api.utils.http_errors import handle_errors

router = APIRouter()


# ============================================================================
# Public catalog
# ============================================================================

@router.get("/subscription-plans")
def list_subscription_plans(db: Session = Depends(get_db)):
    """Active plans, cheapest first"""
    return [catalog.plan_to_dict(p, public=True) for p in catalog.list_plans(db, active_only=True)]


@router.get("/coin-packages")
def list_coin_packages(db: Session = Depends(get_db)):
    """Active coin packages, smallest first"""
    return [catalog.package_to_dict(p, public=True) for p in catalog.list_packages(db, active_only=True)]


@router.get("/plan-coin-costs")
def list_plan_coin_costs(db: Session = Depends(get_db)):
    """Coin prices of plans that can be redeemed with coins"""
    return [
        catalog.coin_cost_to_dict(c, public=True)
        for c in catalog.list_coin_costs(db, purchasable_only=True)
    ]


# ============================================================================
# Admin: subscription plans
# ============================================================================

@router.get("/admin/subscription-plans")
def admin_list_plans(
    admin: AuthenticatedUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return [catalog.plan_to_dict(p) for p in catalog.list_plans(db)]


@router.post("/admin/subscription-plans")
def admin_create_plan(
    request: PlanCreateRequest,
    admin: AuthenticatedUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    with handle_errors(db, "create plan"):
        plan = catalog.create_plan(db, request.model_dump())
        logger.info(f"Admin {admin.uid} created plan {plan.id}")
        return catalog.plan_to_dict(plan)


@router.patch("/admin/subscription-plans/{plan_id}")
def admin_update_plan(
    plan_id: int,
    request: PlanUpdateRequest,
    admin: AuthenticatedUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    with handle_errors(db, "update plan"):
        plan = catalog.update_plan(db, plan_id, request.model_dump(exclude_unset=True))
        return catalog.plan_to_dict(plan)


@router.delete("/admin/subscription-plans/{plan_id}")
def admin_delete_plan(
    plan_id: int,
    admin: AuthenticatedUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Delete an unused plan; plans with subscription history are deactivated"""
    with handle_errors(db, "delete plan"):
        catalog.delete_plan(db, plan_id)
        return {"success": True}


# ============================================================================
# Admin: coin packages
# ============================================================================

@router.get("/admin/coin-packages")
def admin_list_packages(
    admin: AuthenticatedUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return [catalog.package_to_dict(p) for p in catalog.list_packages(db)]


@router.post("/admin/coin-packages")
def admin_create_package(
    request: CoinPackageCreateRequest,
    admin: AuthenticatedUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    with handle_errors(db, "create coin package"):
        package = catalog.create_package(db, request.model_dump())
        return catalog.package_to_dict(package)


@router.patch("/admin/coin-packages/{package_id}")
def admin_update_package(
    package_id: int,
    request: CoinPackageUpdateRequest,
    admin: AuthenticatedUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    with handle_errors(db, "update coin package"):
        package = catalog.update_package(db, package_id, request.model_dump(exclude_unset=True))
        return catalog.package_to_dict(package)


@router.delete("/admin/coin-packages/{package_id}")
def admin_delete_package(
    package_id: int,
    admin: AuthenticatedUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    with handle_errors(db, "delete coin package"):
        catalog.delete_package(db, package_id)
        return {"success": True}
