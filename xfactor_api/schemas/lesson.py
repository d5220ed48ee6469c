"""Lesson write schemas.

Multipart forms deliver list fields as JSON text; they are decoded before
validation so the handlers only ever see typed values.
"""

import json
from datetime import date
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from xfactor_api.schemas.material import Material

_JSON_LIST_FIELDS = ("tags", "lesson_topics", "key_points", "support_materials")


def _decode_json_text(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return json.loads(value) if value.strip() else []
        except json.JSONDecodeError as e:
            raise ValueError("must be valid JSON") from e
    return value


def _decode_bool(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().lower() in {"true", "1", "yes", "on"}
    return value


class LessonUpdate(BaseModel):
    """Partial lesson update; unset fields are left untouched."""

    model_config = ConfigDict(extra="ignore")

    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    vimeo_video_id: Optional[str] = Field(default=None, max_length=100)
    video_duration: Optional[int] = Field(default=None, ge=0)
    thumbnail_url: Optional[str] = None
    category: Optional[str] = Field(default=None, max_length=100)
    tags: Optional[list[str]] = None
    lesson_topics: Optional[list[str]] = None
    key_points: Optional[list[str]] = None
    support_materials: Optional[list[Material]] = None
    chapter_order: Optional[int] = None
    lesson_number: Optional[int] = None
    scheduled_date: Optional[date] = None
    is_published: Optional[bool] = None

    @field_validator(*_JSON_LIST_FIELDS, mode="before")
    @classmethod
    def decode_json_lists(cls, value: Any) -> Any:
        return _decode_json_text(value)

    @field_validator("is_published", mode="before")
    @classmethod
    def decode_bool(cls, value: Any) -> Any:
        return _decode_bool(value)

    @field_validator("scheduled_date", "video_duration", mode="before")
    @classmethod
    def blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class LessonCreate(LessonUpdate):
    title: str = Field(min_length=1, max_length=255)
    is_published: bool = False
