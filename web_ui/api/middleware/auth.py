"""
Authentication Middleware for the StoryTime Web API

Implements Firebase Auth token verification and entitlement-based access control.

Security features:
- Firebase ID token verification (revocation checked)
- Admin checks read fresh from the database on every request
- Blocked-account checks before mutating operations
- Trial/subscription gating with a distinguished 402 response
"""

import os
import logging
from typing import Optional
from dataclasses import dataclass

from fastapi import Request, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from config import settings
from models.account import ParentSettings
from models.database import get_db
from subscription.entitlement import resolve_for_user
from subscription.errors import Forbidden, NotFound, SubscriptionRequired, Unauthenticated
from subscription.models import SubscriptionInfo
from web_ui.api.utils.http_errors import to_http_exception

logger = logging.getLogger(__name__)

# Firebase Admin SDK (lazy import to avoid startup issues if not configured)
_firebase_app = None


def _get_firebase_app():
    """Lazy initialization of Firebase Admin SDK"""
    global _firebase_app
    if _firebase_app is not None:
        return _firebase_app

    try:
        import firebase_admin
        from firebase_admin import credentials

        # Check if already initialized
        try:
            _firebase_app = firebase_admin.get_app()
            return _firebase_app
        except ValueError:
            pass

        cred_path = settings.GOOGLE_APPLICATION_CREDENTIALS or os.environ.get("GOOGLE_APPLICATION_CREDENTIALS")

        if cred_path and os.path.exists(cred_path):
            cred = credentials.Certificate(cred_path)
            _firebase_app = firebase_admin.initialize_app(cred)
        else:
            # Application default credentials (GCP environments)
            cred = credentials.ApplicationDefault()
            _firebase_app = firebase_admin.initialize_app(cred)

        return _firebase_app

    except ImportError:
        return None


@dataclass
class AuthenticatedUser:
    """Identity resolved from a verified Firebase ID token"""
    uid: str
    email: Optional[str] = None
    email_verified: bool = False
    display_name: Optional[str] = None


# Security scheme for Swagger UI
security_scheme = HTTPBearer(auto_error=False)


async def verify_firebase_token(token: str) -> Optional[dict]:
    """
    Verify a Firebase ID token.

    Args:
        token: Firebase ID token string

    Returns:
        Decoded token claims if valid, None otherwise

    Raises:
        RuntimeError: If Firebase is not configured
    """
    firebase_app = _get_firebase_app()

    if firebase_app is None:
        raise RuntimeError(
            "CRITICAL: Firebase not configured. Set GOOGLE_APPLICATION_CREDENTIALS "
            "environment variable to your Firebase service account JSON file path."
        )

    from firebase_admin import auth

    try:
        return auth.verify_id_token(token, check_revoked=True, app=firebase_app)
    except auth.RevokedIdTokenError:
        return None
    except auth.ExpiredIdTokenError:
        return None
    except auth.InvalidIdTokenError:
        return None
    except Exception as e:
        # Log the error but don't expose details to client
        logger.error(f"Token verification error: {e}")
        return None


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security_scheme)
) -> AuthenticatedUser:
    """
    FastAPI dependency to get the current authenticated user.

    Raises HTTPException 401 if not authenticated.
    """
    if credentials is None:
        raise to_http_exception(Unauthenticated())

    decoded = await verify_firebase_token(credentials.credentials)

    if decoded is None or not decoded.get("uid"):
        raise to_http_exception(Unauthenticated("Invalid or expired token"))

    return AuthenticatedUser(
        uid=decoded["uid"],
        email=decoded.get("email"),
        email_verified=decoded.get("email_verified", False),
        display_name=decoded.get("name"),
    )


def get_current_account(
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> ParentSettings:
    """The caller's account row; 404 if settings were never created"""
    account = db.get(ParentSettings, user.uid)
    if account is None:
        raise to_http_exception(NotFound("User settings not found"))
    return account


def require_admin(
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> AuthenticatedUser:
    """
    FastAPI dependency to require admin privileges.

    The flag is read from the database on every request; token claims and
    request bodies are never consulted.
    """
    is_admin = db.query(ParentSettings.is_admin).filter(ParentSettings.user_id == user.uid).scalar()
    if not is_admin:
        logger.warning(f"Admin access denied for user {user.uid}")
        raise to_http_exception(Forbidden("Admin access required"))
    return user


def check_not_blocked(
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
) -> AuthenticatedUser:
    """Reject blocked accounts; callers without settings yet are let through"""
    is_blocked = db.query(ParentSettings.is_blocked).filter(ParentSettings.user_id == user.uid).scalar()
    if is_blocked:
        logger.warning(f"Blocked user {user.uid} attempted a mutating operation")
        raise to_http_exception(Forbidden("Your account has been blocked"))
    return user


def get_subscription_info(
    account: ParentSettings = Depends(get_current_account),
    db: Session = Depends(get_db),
) -> SubscriptionInfo:
    """Non-gating: always succeeds and reports the computed status"""
    return resolve_for_user(db, account)


def require_active_pass(
    account: ParentSettings = Depends(get_current_account),
    db: Session = Depends(get_db),
) -> SubscriptionInfo:
    """Gating: 402 SubscriptionRequired when the account has no trial or pass"""
    info = resolve_for_user(db, account)
    if info.is_expired:
        raise to_http_exception(SubscriptionRequired(subscriptionInfo=info.to_dict()))
    return info
