"""
Admin API Routes for StoryTime

Story moderation, user management, coin grants and coin pricing.
Every route except /admin/check requires the caller's isAdmin flag, read
from the database on each request.
"""

from datetime import timedelta
from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy import func
from sqlalchemy.orm import Session

from core import stories
from models.account import ParentSettings
from models.database import get_db, utcnow
from models.story import Bookmark, Story
from subscription import accounts, catalog, coin_ledger
from subscription.models import isoformat
from utils.logger import logger
from web_ui.api.middleware.auth import AuthenticatedUser, get_current_user, require_admin
from web_ui.api.schemas.billing_schemas import (
    CoinSettingsRequest,
    GrantCoinsRequest,
    PlanCoinCostRequest,
    SetAdminRequest,
    SetBlockedRequest,
)
from web_ui.api.schemas.story_schemas import ReviewStoryRequest
from web_ui.api.utils.http_errors import handle_errors

router = APIRouter()


@router.get("/admin/check")
def check_admin(
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Whether the caller is an admin; never fails for non-admins"""
    is_admin = db.query(ParentSettings.is_admin).filter(ParentSettings.user_id == user.uid).scalar()
    return {"isAdmin": bool(is_admin)}


# ============================================================================
# Story moderation
# ============================================================================

@router.get("/admin/pending-stories")
def pending_stories(
    admin: AuthenticatedUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return [stories.story_to_dict(s) for s in stories.list_by_status(db, "pending_review")]


@router.get("/admin/stories")
def all_stories(
    status: Optional[str] = None,
    admin: AuthenticatedUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return [stories.story_to_dict(s) for s in stories.list_by_status(db, status)]


@router.post("/admin/review-story/{story_id}")
def review_story(
    story_id: int,
    request: ReviewStoryRequest,
    admin: AuthenticatedUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """
    Approve (publish and pay the author) or reject (back to draft) a story.

    Only stories in pending_review can be reviewed, so a story pays out once.
    """
    with handle_errors(db, "review story"):
        outcome = stories.review_story(
            db,
            admin.uid,
            story_id,
            request.action,
            rejection_reason=request.rejection_reason,
        )
        return {
            **stories.story_to_dict(outcome.story),
            "coinsAwarded": outcome.coins_awarded,
        }


@router.delete("/admin/stories/{story_id}")
def delete_story(
    story_id: int,
    admin: AuthenticatedUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    with handle_errors(db, "delete story"):
        stories.delete_story(db, story_id)
        logger.info(f"Admin {admin.uid} deleted story {story_id}")
        return {"success": True}


# ============================================================================
# Users
# ============================================================================

@router.get("/admin/users")
def list_users(
    admin: AuthenticatedUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Account summaries with each user's story count"""
    counts = dict(
        db.query(Story.user_id, func.count(Story.id)).group_by(Story.user_id).all()
    )
    users = db.query(ParentSettings).order_by(ParentSettings.created_at).all()
    return [
        {
            "userId": u.user_id,
            "isAdmin": u.is_admin,
            "isBlocked": u.is_blocked,
            "coins": u.coins,
            "subscriptionStatus": u.subscription_status,
            "trialEndsAt": isoformat(u.trial_ends_at),
            "createdAt": isoformat(u.created_at),
            "storyCount": counts.get(u.user_id, 0),
        }
        for u in users
    ]


@router.get("/admin/stats")
def get_stats(
    admin: AuthenticatedUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    total_users = db.query(func.count(ParentSettings.user_id)).scalar() or 0
    total_stories = db.query(func.count(Story.id)).scalar() or 0
    total_bookmarks = db.query(func.count(Bookmark.id)).scalar() or 0
    recent = (
        db.query(func.count(Story.id))
        .filter(Story.created_at >= utcnow() - timedelta(days=7))
        .scalar()
        or 0
    )
    average = total_stories / total_users if total_users else 0

    return {
        "totalUsers": total_users,
        "totalStories": total_stories,
        "totalBookmarks": total_bookmarks,
        "recentStoriesCount": recent,
        "averageStoriesPerUser": f"{average:.1f}",
    }


@router.patch("/admin/users/{user_id}/block")
def set_user_blocked(
    user_id: str,
    request: SetBlockedRequest,
    admin: AuthenticatedUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    with handle_errors(db, "update block status"):
        target = accounts.set_blocked(db, admin.uid, user_id, request.is_blocked)
        return {"success": True, "userId": target.user_id, "isBlocked": target.is_blocked}


@router.patch("/admin/users/{user_id}/admin")
def set_user_admin(
    user_id: str,
    request: SetAdminRequest,
    admin: AuthenticatedUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    with handle_errors(db, "update admin status"):
        target = accounts.set_admin(db, admin.uid, user_id, request.is_admin)
        return {"success": True, "userId": target.user_id, "isAdmin": target.is_admin}


# ============================================================================
# Coins
# ============================================================================

@router.post("/admin/grant-coins")
def grant_coins(
    request: GrantCoinsRequest,
    admin: AuthenticatedUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    with handle_errors(db, "grant coins"):
        balance = coin_ledger.grant_coins(db, admin.uid, request.user_id, request.amount)
        return {
            "success": True,
            "userId": request.user_id,
            "coinsGranted": request.amount,
            "newBalance": balance,
        }


@router.get("/admin/coin-settings")
def get_coin_settings(
    admin: AuthenticatedUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    with handle_errors(db, "fetch coin settings"):
        row = coin_ledger.get_coin_settings(db)
        return {"coinsPerStory": row.coins_per_story, "updatedAt": isoformat(row.updated_at)}


@router.put("/admin/coin-settings")
def update_coin_settings(
    request: CoinSettingsRequest,
    admin: AuthenticatedUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    with handle_errors(db, "update coin settings"):
        row = coin_ledger.set_coins_per_story(db, request.coins_per_story)
        logger.info(f"Admin {admin.uid} set coins per story to {row.coins_per_story}")
        return {"coinsPerStory": row.coins_per_story, "updatedAt": isoformat(row.updated_at)}


@router.get("/admin/plan-coin-costs")
def list_plan_coin_costs(
    admin: AuthenticatedUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return [catalog.coin_cost_to_dict(c) for c in catalog.list_coin_costs(db)]


@router.put("/admin/plan-coin-costs")
def set_plan_coin_cost(
    request: PlanCoinCostRequest,
    admin: AuthenticatedUser = Depends(require_admin),
    db: Session = Depends(get_db),
):
    """Set a plan's coin price; 0 makes the plan non-purchasable with coins"""
    with handle_errors(db, "set plan coin cost"):
        cost = catalog.set_plan_coin_cost(db, request.plan_id, request.coin_cost)
        return catalog.coin_cost_to_dict(cost)
