"""Parent settings and child-lock PIN routes

SECURITY: isAdmin, isBlocked, coins and the trial window are never written
from the request body; the schema only admits the allow-listed fields.
"""

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from models.database import get_db
from subscription.accounts import (
    SettingsUpdate,
    account_to_dict,
    create_or_update_settings,
    get_account,
)
from utils.logger import logger
from web_ui.api.middleware.auth import AuthenticatedUser, get_current_user
from web_ui.api.schemas.settings_schemas import (
    ParentSettingsRequest,
    VerifyPinRequest,
    VerifyPinResponse,
)
from web_ui.api.utils.http_errors import handle_errors
from web_ui.api.utils.security import hash_pin, is_valid_pin_format, verify_pin

router = APIRouter()


@router.get("/parent-settings")
def get_parent_settings(
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Get the caller's settings (never includes the PIN hash)"""
    account = get_account(db, user.uid)
    if account is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "NotFound", "message": "Settings not found"},
        )
    return account_to_dict(account)


@router.post("/parent-settings")
def save_parent_settings(
    request: ParentSettingsRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Create settings (starting the trial) or update PIN and preferences"""
    with handle_errors(db, "save settings"):
        account = create_or_update_settings(
            db,
            user.uid,
            SettingsUpdate(
                pin_hash=hash_pin(request.pin),
                reading_time_limit=request.reading_time_limit,
                fullscreen_lock_enabled=request.fullscreen_lock_enabled,
                theme=request.theme,
            ),
        )
        return account_to_dict(account)


@router.post("/verify-pin", response_model=VerifyPinResponse)
def verify_parent_pin(
    request: VerifyPinRequest,
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Check the child-lock PIN"""
    if not is_valid_pin_format(request.pin):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": "ValidationFailed", "message": "Invalid PIN format", "valid": False},
        )

    account = get_account(db, user.uid)
    if account is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "NotFound", "message": "Settings not found", "valid": False},
        )

    valid = verify_pin(request.pin, account.pin_hash)
    if not valid:
        logger.info(f"Incorrect PIN entered for user {user.uid}")
    return VerifyPinResponse(valid=valid)
