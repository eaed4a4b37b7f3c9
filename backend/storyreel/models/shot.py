from __future__ import annotations
"""Shot ORM models — storyboard shots with their keyframes and video interval."""

from typing import Optional

from sqlalchemy import JSON, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from storyreel.database import Base
from storyreel.models.mixins import EpisodeScoped


class Shot(EpisodeScoped, Base):
    """One storyboard shot."""

    __tablename__ = "shots"

    scene_id: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    action_summary: Mapped[str] = mapped_column(Text, nullable=False, default="")
    dialogue: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    camera_movement: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    shot_size: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    characters_json: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    character_variations_json: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    props_json: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    video_model: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Nine-grid (3x3 storyboard sheet)
    nine_grid_panels: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)
    nine_grid_image: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    nine_grid_prompt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    nine_grid_status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)


class ShotKeyframe(EpisodeScoped, Base):
    """Start or end frame of a shot."""

    __tablename__ = "shot_keyframes"

    shot_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    type: Mapped[str] = mapped_column(String(20), nullable=False, default="start")
    visual_prompt: Mapped[str] = mapped_column(Text, nullable=False, default="")
    image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")


class ShotVideoInterval(EpisodeScoped, Base):
    """The generated clip between a shot's keyframes."""

    __tablename__ = "shot_video_intervals"

    shot_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    start_keyframe_id: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    end_keyframe_id: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    duration: Mapped[float] = mapped_column(Float, nullable=False, default=0)
    motion_strength: Mapped[int] = mapped_column(Integer, nullable=False, default=5)
    video_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    video_prompt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")
