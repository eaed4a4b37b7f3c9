from __future__ import annotations
"""GenerationTask ORM model — one tracked request to an external generation provider."""

import enum
import secrets
import time
from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Index, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from storyreel.database import MYSQL_TABLE_ARGS, Base, LongText


class TaskKind(str, enum.Enum):
    """What a task generates."""

    VIDEO = "video"
    IMAGE = "image"
    TEXT = "text"


class TaskStatus(str, enum.Enum):
    """Task lifecycle statuses — strictly forward-only."""

    PENDING = "pending"
    RUNNING = "running"
    POLLING = "polling"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


ACTIVE_STATUSES: frozenset[TaskStatus] = frozenset(
    {TaskStatus.PENDING, TaskStatus.RUNNING, TaskStatus.POLLING}
)

# Explicit valid transitions: status -> set of reachable statuses
VALID_TRANSITIONS: dict[TaskStatus, frozenset[TaskStatus]] = {
    TaskStatus.PENDING: frozenset({TaskStatus.RUNNING, TaskStatus.FAILED, TaskStatus.CANCELLED}),
    TaskStatus.RUNNING: frozenset({
        TaskStatus.POLLING, TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED,
    }),
    TaskStatus.POLLING: frozenset({TaskStatus.COMPLETED, TaskStatus.FAILED, TaskStatus.CANCELLED}),
    TaskStatus.COMPLETED: frozenset(),
    TaskStatus.FAILED: frozenset(),
    TaskStatus.CANCELLED: frozenset(),
}


def can_transition(current: str | TaskStatus, target: str | TaskStatus) -> bool:
    """Check whether ``current -> target`` is an allowed edge of the task DAG."""
    try:
        src = TaskStatus(current)
        dst = TaskStatus(target)
    except ValueError:
        return False
    return dst in VALID_TRANSITIONS[src]


def sources_for(target: TaskStatus) -> list[str]:
    """All statuses from which ``target`` may be entered."""
    return [src.value for src, dsts in VALID_TRANSITIONS.items() if target in dsts]


def new_task_id() -> str:
    return f"task_{int(time.time() * 1000):x}_{secrets.token_hex(3)}"


class GenerationTask(Base):
    """Durable record of a generation job and its lifecycle state."""

    __tablename__ = "generation_tasks"
    __table_args__ = (
        Index("idx_task_owner_status", "owner_id", "status"),
        Index("idx_task_project", "project_id", "owner_id"),
        Index("idx_task_status", "status"),
        MYSQL_TABLE_ARGS,
    )

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=new_task_id)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    project_id: Mapped[str] = mapped_column(String(128), nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TaskStatus.PENDING.value
    )
    params: Mapped[str] = mapped_column(LongText, nullable=False)  # JSON

    # Async provider bookkeeping
    provider_task_id: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    provider: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    model_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    result: Mapped[Optional[str]] = mapped_column(LongText, nullable=True)
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Result target descriptor
    target_type: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    target_shot_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    target_entity_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    target_episode_id: Mapped[str] = mapped_column(String(128), nullable=False, default="")

    created_at: Mapped[datetime] = mapped_column(DateTime, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), onupdate=func.now()
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
