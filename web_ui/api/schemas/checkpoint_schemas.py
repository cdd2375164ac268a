"""Checkpoint and reading session schemas"""

from typing import Literal, Optional

from pydantic import Field

from web_ui.api.schemas.common import CamelModel


class CheckpointRequest(CamelModel):
    title: str = Field(..., min_length=1, max_length=200)
    description: Optional[str] = None
    goal_type: Literal["stories_read", "reading_minutes", "reading_days"]
    goal_target: int = Field(..., ge=1)
    reward_title: str = Field(..., min_length=1)
    reward_description: Optional[str] = None


class ReadingSessionRequest(CamelModel):
    story_id: int
    duration_minutes: int = Field(..., ge=0, le=24 * 60)
