"""Lesson lifecycle request schemas.

Numeric fields are strict: a string such as ``"12"`` is rejected rather than
coerced, and the request is refused as a whole. Infinity and NaN (which the
JSON parser accepts) are refused too.
"""

from typing import Annotated, Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field

StrictNonNegative = Annotated[float, Field(ge=0, strict=True, allow_inf_nan=False)]
StrictPercentage = Annotated[float, Field(strict=True, allow_inf_nan=False)]


class StartSessionRequest(BaseModel):
    device_info: str = Field(default="web_browser", max_length=255)
    session_id: Optional[str] = Field(default=None, max_length=100)


class WatchSessionData(BaseModel):
    """Client-side session payload, keyed by ``session_id``; extra keys are kept."""

    model_config = ConfigDict(extra="allow")

    session_id: str = Field(min_length=1, max_length=100)


class ProgressUpdateRequest(BaseModel):
    last_watched_position: StrictNonNegative
    total_watch_time: StrictNonNegative
    completion_percentage: Optional[StrictPercentage] = None
    watch_session_data: Optional[WatchSessionData] = None


class CompleteLessonRequest(BaseModel):
    final_watch_time: Optional[StrictNonNegative] = None
    completion_percentage: StrictPercentage = 100
    session_summary: Optional[Union[dict[str, Any], str]] = None
    rating: Optional[int] = Field(default=None, ge=1, le=5)
    feedback: Optional[str] = Field(default=None, max_length=5000)
