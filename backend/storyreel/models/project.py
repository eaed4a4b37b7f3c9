from __future__ import annotations
"""Project ORM model — root record of the normalized project aggregate."""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, BigInteger, Boolean, DateTime, Index, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from storyreel.database import MYSQL_TABLE_ARGS, Base, LongText


class Project(Base):
    """A short-form video project: script metadata plus the selected episode.

    Child collections live in their own tables (see ``storyreel.models``) and
    are cascaded away with the root.
    """

    __tablename__ = "projects"
    __table_args__ = (
        Index("idx_project_owner", "owner_id", "updated_at"),
        MYSQL_TABLE_ARGS,
    )

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    title: Mapped[str] = mapped_column(String(255), nullable=False, default="Untitled project")
    stage: Mapped[str] = mapped_column(String(50), nullable=False, default="script")
    target_duration: Mapped[str] = mapped_column(String(50), nullable=False, default="60s")
    language: Mapped[str] = mapped_column(String(50), nullable=False, default="English")
    visual_style: Mapped[str] = mapped_column(String(100), nullable=False, default="live-action")
    shot_generation_model: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    raw_script: Mapped[Optional[str]] = mapped_column(LongText, nullable=True)
    selected_episode_id: Mapped[Optional[str]] = mapped_column(String(128), nullable=True)
    is_parsing_script: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # scriptData header (children are stored per entity)
    has_script_data: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    script_title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    script_genre: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    script_logline: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    art_direction: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)

    # Client-side timestamps (epoch ms)
    created_at_ms: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    last_modified_ms: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )

    @property
    def episode_scope(self) -> str:
        """Partition key used for the project's script-level child rows."""
        return self.selected_episode_id or ""
