from __future__ import annotations
"""Pydantic v2 schemas for generation tasks."""

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from storyreel.models.task import TaskKind


class TaskTarget(BaseModel):
    """Which entity field a completed task patches."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    type: str = Field(..., min_length=1, max_length=50)
    shot_id: Optional[str] = None
    entity_id: Optional[str] = None


class TaskCreate(BaseModel):
    """Schema for submitting a generation request.

    Stored verbatim (by alias) as the task's parameter blob.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    type: TaskKind
    project_id: str = Field(..., min_length=1, max_length=128)
    model_id: str = Field(..., min_length=1, max_length=255)
    prompt: str = Field(..., min_length=1)

    # video
    start_image: Optional[str] = None
    end_image: Optional[str] = None
    aspect_ratio: str = "16:9"
    duration: int = Field(8, ge=1, le=60)

    # image
    reference_images: list[str] = Field(default_factory=list)
    is_variation: bool = False
    has_turnaround: bool = False

    # text
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    response_format: Optional[Literal["json_object"]] = None

    target: Optional[TaskTarget] = None

    @field_validator("type", mode="before")
    @classmethod
    def _chat_is_text(cls, value):
        # Clients name text generation "chat"
        return TaskKind.TEXT.value if value == "chat" else value


class TaskRead(BaseModel):
    """Schema for reading a task row."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, from_attributes=True
    )

    id: str
    project_id: str
    kind: str
    status: str
    progress: int
    provider: Optional[str] = None
    provider_task_id: Optional[str] = None
    model_id: Optional[str] = None
    result: Optional[str] = None
    error: Optional[str] = None
    target_type: Optional[str] = None
    target_shot_id: Optional[str] = None
    target_entity_id: Optional[str] = None
    target_episode_id: str = ""
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
