"""Parent settings and PIN schemas"""

from typing import Literal

from pydantic import ConfigDict, Field

from web_ui.api.schemas.common import CamelModel


class ParentSettingsRequest(CamelModel):
    """
    Allow-listed settings payload.

    Server-controlled fields (isAdmin, isBlocked, coins, trial window,
    subscriptionStatus) are not part of the schema and are dropped if sent.
    """
    model_config = ConfigDict(extra="ignore")

    pin: str = Field(..., pattern=r"^\d{4}$")
    reading_time_limit: int = Field(..., ge=10, le=60)
    fullscreen_lock_enabled: bool
    theme: Literal["day", "night"]


class VerifyPinRequest(CamelModel):
    pin: str = ""


class VerifyPinResponse(CamelModel):
    valid: bool
