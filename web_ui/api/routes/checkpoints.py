"""Reading checkpoint and session routes"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core import reading_progress
from models.database import get_db
from web_ui.api.middleware.auth import AuthenticatedUser, check_not_blocked, get_current_user
from web_ui.api.schemas.checkpoint_schemas import CheckpointRequest, ReadingSessionRequest
from web_ui.api.utils.http_errors import handle_errors
from web_ui.api.utils.security import sanitize_text_input, sanitize_title

router = APIRouter()


@router.get("/checkpoints")
def list_checkpoints(
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return [reading_progress.checkpoint_to_dict(c) for c in reading_progress.list_checkpoints(db, user.uid)]


@router.get("/checkpoints/with-progress")
def list_checkpoints_with_progress(
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Active checkpoints with currentProgress, completedAt and isCompleted"""
    return reading_progress.list_with_progress(db, user.uid)


@router.get("/checkpoints/progress")
def list_checkpoint_progress(
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Progress rows of the caller's active checkpoints, each with its checkpoint"""
    return reading_progress.list_progress(db, user.uid)


@router.post("/checkpoints")
def create_checkpoint(
    request: CheckpointRequest,
    user: AuthenticatedUser = Depends(check_not_blocked),
    db: Session = Depends(get_db),
):
    with handle_errors(db, "create checkpoint"):
        fields = request.model_dump()
        fields["title"] = sanitize_title(request.title)
        fields["reward_title"] = sanitize_title(request.reward_title)
        if request.description:
            fields["description"] = sanitize_text_input(request.description, max_length=2000)
        checkpoint = reading_progress.create_checkpoint(db, user.uid, fields)
        return reading_progress.checkpoint_to_dict(checkpoint)


@router.delete("/checkpoints/{checkpoint_id}")
def archive_checkpoint(
    checkpoint_id: int,
    user: AuthenticatedUser = Depends(check_not_blocked),
    db: Session = Depends(get_db),
):
    """Archive (not delete) a checkpoint; progress is kept"""
    with handle_errors(db, "archive checkpoint"):
        reading_progress.archive_checkpoint(db, user.uid, checkpoint_id)
        return {"success": True}


@router.post("/checkpoints/track-story")
def track_story(
    user: AuthenticatedUser = Depends(check_not_blocked),
    db: Session = Depends(get_db),
):
    """Count a finished story towards stories_read goals"""
    with handle_errors(db, "track story"):
        completed = reading_progress.track_story(db, user.uid)
        return {"success": True, "completedCheckpoints": completed}


@router.post("/reading-sessions")
def record_reading_session(
    request: ReadingSessionRequest,
    user: AuthenticatedUser = Depends(check_not_blocked),
    db: Session = Depends(get_db),
):
    with handle_errors(db, "record reading session"):
        session = reading_progress.record_session(
            db, user.uid, request.story_id, request.duration_minutes
        )
        return reading_progress.session_to_dict(session)
