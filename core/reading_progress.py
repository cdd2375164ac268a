"""
Reading checkpoints and sessions

Parents set reading goals (checkpoints); reading activity advances them.
Progress counters are bumped with relative UPDATEs, and completedAt is set
once by a conditional UPDATE so it is never moved or cleared.
"""

import logging
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models.database import utcnow
from models.progress import Checkpoint, CheckpointProgress, ReadingDay, ReadingSession
from subscription.errors import NotFound, ValidationFailed
from subscription.models import isoformat

logger = logging.getLogger(__name__)

GOAL_STORIES_READ = "stories_read"
GOAL_READING_MINUTES = "reading_minutes"
GOAL_READING_DAYS = "reading_days"
GOAL_TYPES = (GOAL_STORIES_READ, GOAL_READING_MINUTES, GOAL_READING_DAYS)


def checkpoint_to_dict(checkpoint: Checkpoint, progress: Optional[CheckpointProgress] = None) -> dict:
    data = {
        "id": checkpoint.id,
        "userId": checkpoint.user_id,
        "title": checkpoint.title,
        "description": checkpoint.description,
        "goalType": checkpoint.goal_type,
        "goalTarget": checkpoint.goal_target,
        "rewardTitle": checkpoint.reward_title,
        "rewardDescription": checkpoint.reward_description,
        "status": checkpoint.status,
        "createdAt": isoformat(checkpoint.created_at),
        "updatedAt": isoformat(checkpoint.updated_at),
    }
    if progress is not None:
        data["currentProgress"] = progress.current_progress
        data["completedAt"] = isoformat(progress.completed_at)
        data["isCompleted"] = progress.completed_at is not None
    return data


def session_to_dict(session: ReadingSession) -> dict:
    return {
        "id": session.id,
        "userId": session.user_id,
        "storyId": session.story_id,
        "readingDate": isoformat(session.reading_date),
        "durationMinutes": session.duration_minutes,
        "createdAt": isoformat(session.created_at),
    }


def list_checkpoints(db: Session, user_id: str) -> List[Checkpoint]:
    return (
        db.query(Checkpoint)
        .filter(Checkpoint.user_id == user_id, Checkpoint.status == "active")
        .order_by(Checkpoint.created_at.desc(), Checkpoint.id.desc())
        .all()
    )


def list_with_progress(db: Session, user_id: str) -> List[dict]:
    result = []
    for checkpoint in list_checkpoints(db, user_id):
        progress = _get_progress(db, checkpoint.id, user_id)
        if progress is None:
            progress = CheckpointProgress(current_progress=0, completed_at=None)
        result.append(checkpoint_to_dict(checkpoint, progress))
    return result


def list_progress(db: Session, user_id: str) -> List[dict]:
    """The caller's progress rows joined to their active checkpoints"""
    rows = (
        db.query(CheckpointProgress, Checkpoint)
        .join(Checkpoint, CheckpointProgress.checkpoint_id == Checkpoint.id)
        .filter(CheckpointProgress.user_id == user_id, Checkpoint.status == "active")
        .order_by(Checkpoint.created_at.desc(), Checkpoint.id.desc())
        .populate_existing()
        .all()
    )
    return [
        {
            "id": progress.id,
            "checkpointId": progress.checkpoint_id,
            "currentProgress": progress.current_progress,
            "completedAt": isoformat(progress.completed_at),
            "checkpoint": checkpoint_to_dict(checkpoint),
        }
        for progress, checkpoint in rows
    ]


def create_checkpoint(db: Session, user_id: str, fields: Dict, now: Optional[datetime] = None) -> Checkpoint:
    now = now or utcnow()

    if fields.get("goal_type") not in GOAL_TYPES:
        raise ValidationFailed(f"goalType must be one of {', '.join(GOAL_TYPES)}")

    checkpoint = Checkpoint(
        user_id=user_id,
        title=fields["title"],
        description=fields.get("description"),
        goal_type=fields["goal_type"],
        goal_target=fields["goal_target"],
        reward_title=fields["reward_title"],
        reward_description=fields.get("reward_description"),
        status="active",
        created_at=now,
        updated_at=now,
    )
    db.add(checkpoint)
    db.flush()
    db.add(CheckpointProgress(checkpoint_id=checkpoint.id, user_id=user_id, current_progress=0))
    db.commit()

    logger.info(f"User {user_id} created checkpoint {checkpoint.id} ({checkpoint.goal_type} >= {checkpoint.goal_target})")
    return checkpoint


def archive_checkpoint(db: Session, user_id: str, checkpoint_id: int) -> None:
    result = db.execute(
        update(Checkpoint)
        .where(Checkpoint.id == checkpoint_id, Checkpoint.user_id == user_id)
        .values(status="archived", updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    db.commit()
    if result.rowcount == 0:
        raise NotFound("Checkpoint not found")


def _get_progress(db: Session, checkpoint_id: int, user_id: str) -> Optional[CheckpointProgress]:
    # Counters are bumped with bulk UPDATEs; reload instead of trusting the identity map
    return (
        db.query(CheckpointProgress)
        .filter(
            CheckpointProgress.checkpoint_id == checkpoint_id,
            CheckpointProgress.user_id == user_id,
        )
        .populate_existing()
        .first()
    )


def _advance(db: Session, checkpoint: Checkpoint, user_id: str, delta: int, now: datetime) -> bool:
    """
    Add delta to a checkpoint's progress.

    Returns True if this call completed the checkpoint.
    """
    if delta <= 0:
        return False

    result = db.execute(
        update(CheckpointProgress)
        .where(
            CheckpointProgress.checkpoint_id == checkpoint.id,
            CheckpointProgress.user_id == user_id,
            CheckpointProgress.completed_at.is_(None),
        )
        .values(current_progress=CheckpointProgress.current_progress + delta, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        return False

    completed = db.execute(
        update(CheckpointProgress)
        .where(
            CheckpointProgress.checkpoint_id == checkpoint.id,
            CheckpointProgress.user_id == user_id,
            CheckpointProgress.completed_at.is_(None),
            CheckpointProgress.current_progress >= checkpoint.goal_target,
        )
        .values(completed_at=now)
        .execution_options(synchronize_session=False)
    )
    if completed.rowcount:
        logger.info(f"User {user_id} completed checkpoint {checkpoint.id}")
        return True
    return False


def track_story(db: Session, user_id: str, now: Optional[datetime] = None) -> List[dict]:
    """Count one finished story towards stories_read goals; returns newly completed checkpoints"""
    now = now or utcnow()

    newly_completed = []
    for checkpoint in list_checkpoints(db, user_id):
        if checkpoint.goal_type != GOAL_STORIES_READ:
            continue
        if _advance(db, checkpoint, user_id, 1, now):
            newly_completed.append(checkpoint)
    db.commit()

    return [
        checkpoint_to_dict(c, _get_progress(db, c.id, user_id))
        for c in newly_completed
    ]


def _claim_reading_day(db: Session, user_id: str, now: datetime) -> bool:
    """Insert the (user, day) marker; only the first session of the day succeeds"""
    db.add(ReadingDay(user_id=user_id, day=now.date(), created_at=now))
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return False
    return True


def record_session(
    db: Session,
    user_id: str,
    story_id: int,
    duration_minutes: int,
    now: Optional[datetime] = None,
) -> ReadingSession:
    """
    Store a reading session and advance every active goal.

    - stories_read: +1
    - reading_minutes: +duration
    - reading_days: +1 only for the first session of the (UTC) day
    """
    now = now or utcnow()

    if duration_minutes < 0:
        raise ValidationFailed("durationMinutes must not be negative")

    session = ReadingSession(
        user_id=user_id,
        story_id=story_id,
        reading_date=now,
        duration_minutes=duration_minutes,
        created_at=now,
    )
    db.add(session)
    db.commit()

    first_today = _claim_reading_day(db, user_id, now)

    for checkpoint in list_checkpoints(db, user_id):
        if checkpoint.goal_type == GOAL_STORIES_READ:
            delta = 1
        elif checkpoint.goal_type == GOAL_READING_MINUTES:
            delta = duration_minutes
        elif checkpoint.goal_type == GOAL_READING_DAYS:
            delta = 1 if first_today else 0
        else:
            delta = 0
        _advance(db, checkpoint, user_id, delta, now)
    db.commit()

    return session
