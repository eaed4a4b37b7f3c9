from __future__ import annotations
"""Novel chapter / episode ORM models — source text a project adapts into scripts."""

from typing import Optional

from sqlalchemy import JSON, BigInteger, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from storyreel.database import Base, LongText
from storyreel.models.mixins import ProjectScoped


class NovelChapter(ProjectScoped, Base):
    """A single chapter of the imported novel."""

    __tablename__ = "novel_chapters"

    chapter_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    reel: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    content: Mapped[Optional[str]] = mapped_column(LongText, nullable=True)


class NovelEpisode(ProjectScoped, Base):
    """An episode (script) built from a range of chapters.

    Its id is the partition key of the script-level child tables.
    """

    __tablename__ = "novel_episodes"

    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    chapter_ids: Mapped[Optional[list]] = mapped_column(JSON, nullable=True, default=list)
    chapter_range: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    script: Mapped[Optional[str]] = mapped_column(LongText, nullable=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default="pending")
    episode_created_at: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    episode_updated_at: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
