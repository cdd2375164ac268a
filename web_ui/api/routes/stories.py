"""Story and bookmark routes

Reading a story requires an active trial or pass; browsing the published
list does not. Mutations are refused for blocked accounts.
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from core import stories
from models.database import get_db
from subscription.models import SubscriptionInfo
from web_ui.api.middleware.auth import (
    AuthenticatedUser,
    check_not_blocked,
    get_current_user,
    require_active_pass,
)
from web_ui.api.schemas.story_schemas import BookmarkRequest, StoryRequest
from web_ui.api.utils.http_errors import handle_errors
from web_ui.api.utils.security import sanitize_text_input, sanitize_title

router = APIRouter()


def _story_fields(request: StoryRequest) -> dict:
    fields = request.model_dump()
    fields["title"] = sanitize_title(request.title)
    fields["content"] = sanitize_text_input(request.content)
    fields["summary"] = sanitize_text_input(request.summary, max_length=2000)
    return fields


# ============================================================================
# Stories
# ============================================================================

@router.get("/stories")
def list_stories(
    storyType: Optional[str] = None,
    category: Optional[str] = None,
    language: Optional[str] = None,
    db: Session = Depends(get_db),
):
    """Published stories, newest first (public)"""
    return [
        stories.story_to_dict(s)
        for s in stories.list_published(db, story_type=storyType, category=category, language=language)
    ]


@router.get("/stories/preview")
def preview_stories(db: Session = Depends(get_db)):
    """Published stories with isCreatorAdmin (public)"""
    return stories.list_preview(db)


@router.get("/stories/my-submissions")
def my_submissions(
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """All of the caller's stories, in any status"""
    return [stories.story_to_dict(s) for s in stories.list_for_user(db, user.uid)]


@router.get("/stories/{story_id}")
def read_story(
    story_id: int,
    info: SubscriptionInfo = Depends(require_active_pass),
    db: Session = Depends(get_db),
):
    """Full story for reading; 402 SubscriptionRequired once trial and passes are over"""
    with handle_errors(db, "fetch story"):
        return stories.story_to_dict(stories.get_published(db, story_id))


@router.post("/stories")
def create_story(
    request: StoryRequest,
    user: AuthenticatedUser = Depends(check_not_blocked),
    db: Session = Depends(get_db),
):
    """Submit a new story; it goes straight to admin review"""
    with handle_errors(db, "create story"):
        story = stories.create_story(db, user.uid, _story_fields(request))
        return stories.story_to_dict(story)


@router.post("/stories/{story_id}/submit")
def submit_story(
    story_id: int,
    user: AuthenticatedUser = Depends(check_not_blocked),
    db: Session = Depends(get_db),
):
    """Send a draft (e.g. a rejected story after edits) back to review"""
    with handle_errors(db, "submit story for review"):
        return stories.story_to_dict(stories.submit_story(db, user.uid, story_id))


@router.patch("/stories/{story_id}")
def update_story(
    story_id: int,
    request: StoryRequest,
    user: AuthenticatedUser = Depends(check_not_blocked),
    db: Session = Depends(get_db),
):
    with handle_errors(db, "update story"):
        story = stories.update_story(db, user.uid, story_id, _story_fields(request))
        return stories.story_to_dict(story)


# ============================================================================
# Bookmarks
# ============================================================================

@router.get("/bookmarks")
def list_bookmarks(
    user: AuthenticatedUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Bookmarked story ids"""
    return stories.list_bookmarks(db, user.uid)


@router.post("/bookmarks")
def add_bookmark(
    request: BookmarkRequest,
    user: AuthenticatedUser = Depends(check_not_blocked),
    db: Session = Depends(get_db),
):
    with handle_errors(db, "add bookmark"):
        created, story_id = stories.add_bookmark(db, user.uid, request.story_id)
        return {"success": True, "created": created, "storyId": story_id}


@router.delete("/bookmarks/{story_id}")
def remove_bookmark(
    story_id: int,
    user: AuthenticatedUser = Depends(check_not_blocked),
    db: Session = Depends(get_db),
):
    with handle_errors(db, "remove bookmark"):
        if not stories.remove_bookmark(db, user.uid, story_id):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail={"error": "NotFound", "message": "Bookmark not found"},
            )
        return {"success": True}
