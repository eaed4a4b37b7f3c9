from __future__ import annotations
"""Durable task rows and their status transitions.

Every status change is a compare-and-set: the UPDATE only matches when the
row's current status may legally move to the target, so a transition that
lost a race (e.g. completion vs. cancel) is a no-op that returns False.
"""

import logging
from typing import Any

from sqlalchemy import func, select, update

from storyreel.config import Settings, get_settings
from storyreel.database import SessionFactory
from storyreel.models.project import Project
from storyreel.models.task import (
    ACTIVE_STATUSES,
    GenerationTask,
    TaskStatus,
    new_task_id,
    sources_for,
)
from storyreel.schemas.task import TaskCreate

logger = logging.getLogger(__name__)

_ACTIVE = [s.value for s in ACTIVE_STATUSES]


def truncate_error(message: str, limit: int) -> str:
    if len(message) <= limit:
        return message
    return message[: max(limit - 3, 0)] + "..."


class TaskStore:
    def __init__(self, session_factory: SessionFactory, settings: Settings | None = None):
        self._session_factory = session_factory
        self.settings = settings or get_settings()

    # ------------------------------------------------------------------
    # Create / read
    # ------------------------------------------------------------------

    async def create(self, owner_id: str, request: TaskCreate) -> GenerationTask:
        """Insert a pending row; the project's selected episode scopes the target."""
        async with self._session_factory() as session:
            async with session.begin():
                episode = await session.scalar(
                    select(Project.selected_episode_id).where(
                        Project.id == request.project_id, Project.owner_id == owner_id
                    )
                )
                task = GenerationTask(
                    id=new_task_id(),
                    owner_id=owner_id,
                    project_id=request.project_id,
                    kind=request.type.value,
                    status=TaskStatus.PENDING.value,
                    params=request.model_dump_json(by_alias=True),
                    model_id=request.model_id,
                    progress=0,
                    target_type=request.target.type if request.target else None,
                    target_shot_id=request.target.shot_id if request.target else None,
                    target_entity_id=request.target.entity_id if request.target else None,
                    target_episode_id=episode or "",
                )
                session.add(task)
            await session.refresh(task)
        logger.info(
            "Task %s created (%s, model=%s, project=%s)",
            task.id, task.kind, task.model_id, task.project_id,
        )
        return task

    async def get(self, task_id: str, owner_id: str | None = None) -> GenerationTask | None:
        async with self._session_factory() as session:
            task = await session.get(GenerationTask, task_id)
        if task is None or (owner_id is not None and task.owner_id != owner_id):
            return None
        return task

    async def list_active(
        self, owner_id: str, project_id: str | None = None
    ) -> list[GenerationTask]:
        stmt = select(GenerationTask).where(
            GenerationTask.owner_id == owner_id, GenerationTask.status.in_(_ACTIVE)
        )
        if project_id:
            stmt = stmt.where(GenerationTask.project_id == project_id)
        async with self._session_factory() as session:
            result = await session.scalars(stmt.order_by(GenerationTask.created_at.desc()))
            return list(result)

    async def list_for_project(
        self, owner_id: str, project_id: str, limit: int | None = None
    ) -> list[GenerationTask]:
        async with self._session_factory() as session:
            result = await session.scalars(
                select(GenerationTask)
                .where(GenerationTask.owner_id == owner_id,
                       GenerationTask.project_id == project_id)
                .order_by(GenerationTask.created_at.desc())
                .limit(limit or self.settings.PROJECT_TASK_LIST_LIMIT)
            )
            return list(result)

    async def list_unfinished(self) -> list[GenerationTask]:
        """All rows still pending / running / polling, oldest first."""
        async with self._session_factory() as session:
            result = await session.scalars(
                select(GenerationTask)
                .where(GenerationTask.status.in_(_ACTIVE))
                .order_by(GenerationTask.created_at)
            )
            return list(result)

    @staticmethod
    def params_of(task: GenerationTask) -> TaskCreate:
        return TaskCreate.model_validate_json(task.params)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def transition(self, task_id: str, target: TaskStatus, **values: Any) -> bool:
        """Move ``task_id`` to ``target`` if its current status allows it."""
        async with self._session_factory() as session:
            result = await session.execute(
                update(GenerationTask)
                .where(
                    GenerationTask.id == task_id,
                    GenerationTask.status.in_(sources_for(target)),
                )
                .values(status=target.value, **values)
            )
            await session.commit()
        moved = result.rowcount == 1
        if not moved:
            logger.debug("Task %s: transition to %s rejected", task_id, target.value)
        return moved

    async def mark_running(self, task_id: str, provider: str) -> bool:
        return await self.transition(task_id, TaskStatus.RUNNING, provider=provider)

    async def attach_handle(self, task_id: str, provider: str, handle: str) -> bool:
        """Persist the provider job handle; the task enters polling."""
        return await self.transition(
            task_id, TaskStatus.POLLING, provider=provider, provider_task_id=handle
        )

    async def complete(self, task_id: str, result: str) -> bool:
        return await self.transition(
            task_id, TaskStatus.COMPLETED,
            result=result, progress=100, error=None, completed_at=func.now(),
        )

    async def fail(self, task_id: str, message: str) -> bool:
        return await self.transition(
            task_id, TaskStatus.FAILED,
            error=truncate_error(message, self.settings.TASK_ERROR_MAX_LENGTH),
            completed_at=func.now(),
        )

    async def cancel(self, task_id: str) -> bool:
        return await self.transition(
            task_id, TaskStatus.CANCELLED, error="Cancelled by user", completed_at=func.now()
        )

    async def update_progress(self, task_id: str, progress: int) -> bool:
        """Record progress; False once the row is no longer active."""
        async with self._session_factory() as session:
            result = await session.execute(
                update(GenerationTask)
                .where(GenerationTask.id == task_id, GenerationTask.status.in_(_ACTIVE))
                .values(progress=max(0, min(int(progress), 100)))
            )
            await session.commit()
        return result.rowcount == 1

    async def is_active(self, task_id: str) -> bool:
        async with self._session_factory() as session:
            status = await session.scalar(
                select(GenerationTask.status).where(GenerationTask.id == task_id)
            )
        return status in _ACTIVE
