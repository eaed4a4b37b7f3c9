from __future__ import annotations
"""Pydantic v2 schemas for the project aggregate (full-snapshot saves and loads).

Wire format is camelCase; Python attributes are snake_case.
"""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class NovelChapterIn(CamelModel):
    id: str
    index: int = 0
    reel: str = ""
    title: str = ""
    content: str = ""
    word_count: Optional[int] = None


class NovelEpisodeIn(CamelModel):
    id: str
    name: str = ""
    chapter_ids: list[str] = Field(default_factory=list)
    chapter_range: str = ""
    script: str = ""
    status: str = "pending"
    created_at: Optional[int] = None
    updated_at: Optional[int] = None
    script_length: Optional[int] = None


class CharacterVariationIn(CamelModel):
    id: str
    name: str = ""
    visual_prompt: Optional[str] = None
    negative_prompt: Optional[str] = None
    reference_image: Optional[str] = None
    reference_image_url: Optional[str] = None
    status: Optional[str] = None


class TurnaroundIn(CamelModel):
    panels: Optional[list[Any]] = None
    status: Optional[str] = None
    prompt: Optional[str] = None
    image_url: Optional[str] = None


class CharacterIn(CamelModel):
    id: str
    name: str = ""
    gender: str = ""
    age: str = ""
    personality: str = ""
    visual_prompt: Optional[str] = None
    negative_prompt: Optional[str] = None
    core_features: Optional[str] = None
    reference_image: Optional[str] = None
    reference_image_url: Optional[str] = None
    turnaround: Optional[TurnaroundIn] = None
    variations: list[CharacterVariationIn] = Field(default_factory=list)
    status: Optional[str] = None


class SceneIn(CamelModel):
    id: str
    location: str = ""
    time: str = ""
    atmosphere: str = ""
    visual_prompt: Optional[str] = None
    negative_prompt: Optional[str] = None
    reference_image: Optional[str] = None
    reference_image_url: Optional[str] = None
    status: Optional[str] = None


class PropIn(CamelModel):
    id: str
    name: str = ""
    category: str = ""
    description: str = ""
    visual_prompt: Optional[str] = None
    negative_prompt: Optional[str] = None
    reference_image: Optional[str] = None
    reference_image_url: Optional[str] = None
    status: Optional[str] = None


class StoryParagraphIn(CamelModel):
    id: str
    text: str = ""
    scene_ref_id: str = ""


class ScriptDataIn(CamelModel):
    title: str = ""
    genre: str = ""
    logline: str = ""
    target_duration: Optional[str] = None
    language: Optional[str] = None
    visual_style: Optional[str] = None
    shot_generation_model: Optional[str] = None
    art_direction: Optional[dict[str, Any]] = None
    characters: list[CharacterIn] = Field(default_factory=list)
    scenes: list[SceneIn] = Field(default_factory=list)
    props: list[PropIn] = Field(default_factory=list)
    story_paragraphs: list[StoryParagraphIn] = Field(default_factory=list)


class KeyframeIn(CamelModel):
    id: str
    type: str = "start"
    visual_prompt: str = ""
    image_url: Optional[str] = None
    status: str = "pending"


class VideoIntervalIn(CamelModel):
    id: str
    start_keyframe_id: str = ""
    end_keyframe_id: str = ""
    duration: float = 0
    motion_strength: int = 5
    video_url: Optional[str] = None
    video_prompt: Optional[str] = None
    status: str = "pending"


class NineGridIn(CamelModel):
    panels: Optional[list[Any]] = None
    image_url: Optional[str] = None
    prompt: Optional[str] = None
    status: Optional[str] = None


class ShotIn(CamelModel):
    id: str
    scene_id: str = ""
    action_summary: str = ""
    dialogue: Optional[str] = None
    camera_movement: str = ""
    shot_size: Optional[str] = None
    characters: list[Any] = Field(default_factory=list)
    character_variations: dict[str, Any] = Field(default_factory=dict)
    props: list[Any] = Field(default_factory=list)
    keyframes: list[KeyframeIn] = Field(default_factory=list)
    interval: Optional[VideoIntervalIn] = None
    video_model: Optional[str] = None
    nine_grid: Optional[NineGridIn] = None


class RenderLogIn(CamelModel):
    id: str
    timestamp: Optional[int] = None
    type: str = ""
    resource_id: str = ""
    resource_name: str = ""
    status: str = ""
    model: str = ""
    prompt: Optional[str] = None
    error: Optional[str] = None
    input_tokens: Optional[int] = None
    output_tokens: Optional[int] = None
    total_tokens: Optional[int] = None
    duration: Optional[int] = None


class ProjectSnapshot(CamelModel):
    """Complete project state.

    Saves are full-replace: any child entity absent from the snapshot is
    deleted. Media fields that are omitted keep their last stored value.
    """

    id: str = Field(..., min_length=1, max_length=128)
    title: str = "Untitled project"
    created_at: Optional[int] = None
    last_modified: Optional[int] = None
    stage: str = "script"
    novel_chapters: list[NovelChapterIn] = Field(default_factory=list)
    novel_episodes: list[NovelEpisodeIn] = Field(default_factory=list)
    selected_episode_id: Optional[str] = None
    raw_script: str = ""
    target_duration: str = "60s"
    language: str = "English"
    visual_style: str = "live-action"
    shot_generation_model: Optional[str] = None
    script_data: Optional[ScriptDataIn] = None
    shots: list[ShotIn] = Field(default_factory=list)
    is_parsing_script: bool = False
    render_logs: list[RenderLogIn] = Field(default_factory=list)

    @property
    def episode_scope(self) -> str:
        return self.selected_episode_id or ""


class ProjectSummary(CamelModel):
    """List-view metadata; heavy fields are not loaded."""

    id: str
    title: str
    created_at: Optional[int] = None
    last_modified: Optional[int] = None
    stage: str
    target_duration: str
    language: str
    visual_style: str
    shot_generation_model: Optional[str] = None
    selected_episode_id: Optional[str] = None
    is_parsing_script: bool = False
