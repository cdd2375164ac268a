"""
Story submission, review and bookmarks for StoryTime

Stories move through: draft -> pending_review -> published, with reject
sending a story back to draft. Approval is the only place coins are earned;
the status transition is a conditional UPDATE so each story pays out once.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models.account import ParentSettings
from models.database import utcnow
from models.story import Bookmark, Story
from subscription import coin_ledger
from subscription.errors import NotFound, ValidationFailed
from subscription.models import StoryStatus, isoformat

logger = logging.getLogger(__name__)

STORY_LANGUAGES = ("english", "malayalam")
STORY_CATEGORIES = ("islamic", "history", "moral", "adventure", "educational", "fairy-tale")
STORY_TYPES = (
    "islamic", "lesson", "history", "fairy-tale", "adventure",
    "educational", "moral", "mythology", "science",
)

DEFAULT_REJECTION_REASON = "Story did not meet quality standards"

# Fields an author may set on create/edit
EDITABLE_FIELDS = (
    "title", "content", "image_url", "summary", "voiceover_url",
    "language", "category", "story_type",
)


@dataclass
class ReviewOutcome:
    story: Story
    coins_awarded: int = 0


def story_to_dict(story: Story) -> dict:
    return {
        "id": story.id,
        "userId": story.user_id,
        "title": story.title,
        "content": story.content,
        "imageUrl": story.image_url,
        "summary": story.summary,
        "voiceoverUrl": story.voiceover_url,
        "language": story.language,
        "category": story.category,
        "storyType": story.story_type,
        "status": story.status,
        "approvedBy": story.approved_by,
        "rejectionReason": story.rejection_reason,
        "createdAt": isoformat(story.created_at),
        "reviewedAt": isoformat(story.reviewed_at),
    }


# ============================================================================
# Queries
# ============================================================================

def list_published(
    db: Session,
    story_type: Optional[str] = None,
    category: Optional[str] = None,
    language: Optional[str] = None,
) -> List[Story]:
    query = db.query(Story).filter(Story.status == StoryStatus.PUBLISHED.value)
    if story_type:
        query = query.filter(Story.story_type == story_type)
    if category:
        query = query.filter(Story.category == category)
    if language:
        query = query.filter(Story.language == language)
    return query.order_by(Story.created_at.desc(), Story.id.desc()).all()


def list_preview(db: Session) -> List[dict]:
    """Published stories for the landing page, each flagged with whether an admin wrote it"""
    published = list_published(db)
    author_ids = {s.user_id for s in published}
    admin_ids = set()
    if author_ids:
        admin_ids = {
            row.user_id
            for row in db.query(ParentSettings.user_id)
            .filter(ParentSettings.user_id.in_(author_ids), ParentSettings.is_admin.is_(True))
            .all()
        }
    return [
        {**story_to_dict(s), "isCreatorAdmin": s.user_id in admin_ids}
        for s in published
    ]


def list_for_user(db: Session, user_id: str) -> List[Story]:
    return (
        db.query(Story)
        .filter(Story.user_id == user_id)
        .order_by(Story.created_at.desc(), Story.id.desc())
        .all()
    )


def list_by_status(db: Session, status: Optional[str] = None) -> List[Story]:
    query = db.query(Story)
    if status:
        query = query.filter(Story.status == status)
    return query.order_by(Story.created_at.desc(), Story.id.desc()).all()


def get_published(db: Session, story_id: int) -> Story:
    story = db.get(Story, story_id)
    if story is None or story.status != StoryStatus.PUBLISHED.value:
        raise NotFound("Story not found")
    return story


def _get_owned(db: Session, user_id: str, story_id: int) -> Story:
    story = db.get(Story, story_id)
    if story is None or story.user_id != user_id:
        raise NotFound("Story not found")
    return story


# ============================================================================
# Author operations
# ============================================================================

def create_story(db: Session, user_id: str, fields: Dict, now: Optional[datetime] = None) -> Story:
    """New stories always go straight to review"""
    now = now or utcnow()
    story = Story(
        user_id=user_id,
        status=StoryStatus.PENDING_REVIEW.value,
        created_at=now,
        **{k: v for k, v in fields.items() if k in EDITABLE_FIELDS},
    )
    db.add(story)
    db.commit()
    logger.info(f"User {user_id} submitted story {story.id} for review")
    return story


def submit_story(db: Session, user_id: str, story_id: int) -> Story:
    story = _get_owned(db, user_id, story_id)
    if story.status != StoryStatus.DRAFT.value:
        raise ValidationFailed("Only draft stories can be submitted for review")

    story.status = StoryStatus.PENDING_REVIEW.value
    db.commit()
    logger.info(f"User {user_id} resubmitted story {story_id}")
    return story


def update_story(db: Session, user_id: str, story_id: int, fields: Dict) -> Story:
    story = _get_owned(db, user_id, story_id)
    if story.status not in (StoryStatus.DRAFT.value, StoryStatus.PENDING_REVIEW.value):
        raise ValidationFailed("Only draft or pending review stories can be edited")

    for key, value in fields.items():
        if key in EDITABLE_FIELDS:
            setattr(story, key, value)
    db.commit()
    return story


# ============================================================================
# Review
# ============================================================================

def review_story(
    db: Session,
    admin_id: str,
    story_id: int,
    action: str,
    rejection_reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> ReviewOutcome:
    """
    Approve or reject a story that is pending review.

    On approval the author earns the current coins-per-story amount in the
    same transaction as the status change.
    """
    now = now or utcnow()

    story = db.get(Story, story_id)
    if story is None:
        raise NotFound("Story not found")
    if story.status != StoryStatus.PENDING_REVIEW.value:
        raise ValidationFailed("Story is not pending review")
    if action not in ("approve", "reject"):
        raise ValidationFailed("action must be 'approve' or 'reject'")

    if action == "approve":
        coins_per_story = coin_ledger.get_coins_per_story(db)
        values = {
            "status": StoryStatus.PUBLISHED.value,
            "approved_by": admin_id,
            "reviewed_at": now,
            "rejection_reason": None,
        }
    else:
        coins_per_story = 0
        values = {
            "status": StoryStatus.DRAFT.value,
            "approved_by": None,
            "reviewed_at": now,
            "rejection_reason": rejection_reason or DEFAULT_REJECTION_REASON,
        }

    try:
        result = db.execute(
            update(Story)
            .where(Story.id == story_id, Story.status == StoryStatus.PENDING_REVIEW.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            db.rollback()
            raise ValidationFailed("Story is not pending review")

        awarded = 0
        if coins_per_story:
            try:
                coin_ledger.earn_on_approval(db, story.user_id, coins_per_story, story_id=story_id)
                awarded = coins_per_story
            except NotFound:
                logger.warning(f"Author {story.user_id} of story {story_id} has no account; no coins awarded")
        db.commit()
    except ValidationFailed:
        raise
    except Exception:
        db.rollback()
        raise

    db.refresh(story)
    logger.info(f"Admin {admin_id} {action}d story {story_id} (coins awarded: {awarded})")
    return ReviewOutcome(story=story, coins_awarded=awarded)


def delete_story(db: Session, story_id: int) -> None:
    story = db.get(Story, story_id)
    if story is None:
        raise NotFound("Story not found")
    db.query(Bookmark).filter(Bookmark.story_id == story_id).delete(synchronize_session=False)
    db.delete(story)
    db.commit()
    logger.info(f"Deleted story {story_id}")


# ============================================================================
# Bookmarks
# ============================================================================

def list_bookmarks(db: Session, user_id: str) -> List[int]:
    rows = (
        db.query(Bookmark.story_id)
        .filter(Bookmark.user_id == user_id)
        .order_by(Bookmark.id)
        .all()
    )
    return [row.story_id for row in rows]


def add_bookmark(db: Session, user_id: str, story_id: int) -> Tuple[bool, int]:
    """Bookmark a story; returns (created, story_id). Existing bookmarks are left as is."""
    if db.get(Story, story_id) is None:
        raise NotFound("Story not found")

    exists = (
        db.query(Bookmark.id)
        .filter(Bookmark.user_id == user_id, Bookmark.story_id == story_id)
        .first()
    )
    if exists:
        return False, story_id

    db.add(Bookmark(user_id=user_id, story_id=story_id))
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        return False, story_id
    return True, story_id


def remove_bookmark(db: Session, user_id: str, story_id: int) -> bool:
    deleted = (
        db.query(Bookmark)
        .filter(Bookmark.user_id == user_id, Bookmark.story_id == story_id)
        .delete(synchronize_session=False)
    )
    db.commit()
    return deleted > 0
