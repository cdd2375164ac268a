"""
Subscription API Routes for StoryTime

Trial activation, status display, coin redemption and cancellation.
Status is recomputed on every call; nothing here trusts the cached
subscriptionStatus column.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from models.account import ParentSettings
from models.database import get_db
from subscription import accounts, coin_ledger, lifecycle
from subscription.models import SubscriptionInfo, isoformat
from utils.logger import logger
from web_ui.api.middleware.auth import (
    AuthenticatedUser,
    check_not_blocked,
    get_current_account,
    get_current_user,
    get_subscription_info,
)
from web_ui.api.schemas.billing_schemas import PurchaseWithCoinsRequest
from web_ui.api.utils.http_errors import handle_errors

router = APIRouter()


@router.get("/subscription/status")
def get_subscription_status(info: SubscriptionInfo = Depends(get_subscription_info)):
    """
    Get the caller's access status.

    Response: {status, trialDaysRemaining?, hasActivePass, activePassEndDate?, coins}
    """
    return info.to_dict()


@router.post("/subscription/activate-trial")
def activate_trial(
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Start the free trial; calling it again changes nothing"""
    with handle_errors(db, "activate trial"):
        result = accounts.activate_trial(db, user.uid)
        return {
            "message": result.message,
            "activated": result.activated,
            "trialEndsAt": isoformat(result.trial_ends_at),
        }


@router.post("/subscriptions/purchase-with-coins")
def purchase_with_coins(
    request: PurchaseWithCoinsRequest,
    account: ParentSettings = Depends(get_current_account),
    _: AuthenticatedUser = Depends(check_not_blocked),
    db: Session = Depends(get_db),
):
    """
    Redeem coins for a subscription plan.

    Errors:
    - 404 NotFound: plan missing or inactive
    - 400 PlanNotPurchasable: plan has no coin cost
    - 400 InsufficientCoins: includes required and available amounts
    """
    with handle_errors(db, "purchase plan with coins"):
        subscription, remaining = coin_ledger.spend_on_redeem(db, account.user_id, request.plan_id)
        logger.info(
            f"User {account.user_id} redeemed plan {request.plan_id}; "
            f"subscription {subscription.id}, {remaining} coins left"
        )
        return {
            **lifecycle.subscription_to_dict(subscription),
            "remainingCoins": remaining,
        }


@router.post("/subscriptions/cancel")
def cancel_subscription(
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Cancel the latest active subscription; access ends immediately"""
    with handle_errors(db, "cancel subscription"):
        subscription = lifecycle.cancel_latest(db, user.uid)
        return lifecycle.subscription_to_dict(subscription)
