"""Story, review and bookmark schemas"""

from typing import Literal, Optional

from pydantic import Field

from web_ui.api.schemas.common import CamelModel

StoryLanguage = Literal["english", "malayalam"]
StoryCategory = Literal["islamic", "history", "moral", "adventure", "educational", "fairy-tale"]
StoryType = Literal[
    "islamic", "lesson", "history", "fairy-tale", "adventure",
    "educational", "moral", "mythology", "science",
]


class StoryRequest(CamelModel):
    """Create or edit a story"""
    title: str = Field(..., min_length=1, max_length=200)
    content: str = Field(..., min_length=1)
    image_url: str
    summary: str
    voiceover_url: Optional[str] = None
    language: StoryLanguage
    category: StoryCategory
    story_type: StoryType


class ReviewStoryRequest(CamelModel):
    action: Literal["approve", "reject"]
    rejection_reason: Optional[str] = None


class BookmarkRequest(CamelModel):
    story_id: int
