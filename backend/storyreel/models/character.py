from __future__ import annotations
"""Character ORM models — identity assets for visual consistency across shots."""

from typing import Optional

from sqlalchemy import JSON, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from storyreel.database import Base
from storyreel.models.mixins import EpisodeScoped


class Character(EpisodeScoped, Base):
    """A character with its reference image and optional turnaround sheet."""

    __tablename__ = "script_characters"

    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    gender: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    age: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    personality: Mapped[str] = mapped_column(Text, nullable=False, default="")
    visual_prompt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    negative_prompt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    core_features: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Media: durable reference (data/...) or remote URL
    reference_image: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reference_image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    turnaround_data: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    turnaround_image: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)


class CharacterVariation(EpisodeScoped, Base):
    """An outfit / look variation of a character."""

    __tablename__ = "character_variations"

    character_id: Mapped[str] = mapped_column(String(128), primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    visual_prompt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    negative_prompt: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reference_image: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reference_image_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
