from __future__ import annotations
"""Shared key columns for project child tables.

Every child row is keyed by (entity id, project id, owner id) and, for
script-level data, the episode/script id as well, so several scripts can live
in one project without id collisions.
"""

from sqlalchemy import ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, declared_attr, mapped_column


class ProjectScoped:
    """Composite key (id, project_id, owner_id) with cascade on the project root."""

    id: Mapped[str] = mapped_column(String(128), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(64), primary_key=True)

    @declared_attr
    def project_id(cls) -> Mapped[str]:
        return mapped_column(
            String(128),
            ForeignKey("projects.id", ondelete="CASCADE"),
            primary_key=True,
            index=True,
        )


class EpisodeScoped(ProjectScoped):
    """Adds the episode/script partition key to the primary key."""

    episode_id: Mapped[str] = mapped_column(
        String(128), primary_key=True, default="", index=True
    )
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
