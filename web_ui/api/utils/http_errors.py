"""
Translate entitlement errors into HTTP responses.

Response body: {"detail": {"error": <code>, "message": <text>, ...context}}
"""

from contextlib import contextmanager

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from subscription.errors import EntitlementError, Unauthenticated
from utils.logger import logger


def to_http_exception(error: EntitlementError) -> HTTPException:
    headers = None
    if isinstance(error, Unauthenticated):
        headers = {"WWW-Authenticate": "Bearer"}
    return HTTPException(status_code=error.status_code, detail=error.to_dict(), headers=headers)


def internal_error(message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"error": "InternalError", "message": message},
    )


@contextmanager
def handle_errors(db: Session, action: str):
    """
    Route handler guard.

    Domain errors become their HTTP status; anything unexpected is logged,
    the session is rolled back and a generic 500 is returned.
    """
    try:
        yield
    except HTTPException:
        raise
    except EntitlementError as e:
        raise to_http_exception(e)
    except Exception as e:
        db.rollback()
        logger.exception(f"Failed to {action}: {e}")
        raise internal_error(f"Failed to {action}")
