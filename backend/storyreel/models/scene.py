from __future__ import annotations
"""Script scene, prop and story paragraph ORM models."""

from typing import Optional

from sqlalchemy import String, Text
from sqlalchemy.orm import Mapped, mapped_column

from storyreel.database import Base
from storyreel.models.mixins import EpisodeScoped


class ScriptScene(EpisodeScoped, Base):
    """A location/environment with its reference image."""

    __tablename__ = "script_scenes"

    location: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    time_period: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    atmosphere: Mapped[str] = mapped_column(Text, nullable=False, default="")
    visual_prompt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    negative_prompt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reference_image: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reference_image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)


class ScriptProp(EpisodeScoped, Base):
    """A recurring object that must look the same in every shot."""

    __tablename__ = "script_props"

    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    category: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    visual_prompt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    negative_prompt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reference_image: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reference_image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)


class StoryParagraph(EpisodeScoped, Base):
    """A paragraph of the story text, optionally linked to a scene."""

    __tablename__ = "story_paragraphs"

    text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    scene_ref_id: Mapped[str] = mapped_column(String(255), nullable=False, default="")
