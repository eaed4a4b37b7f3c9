from __future__ import annotations
"""Generation task API — submit, inspect, list and cancel tasks."""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from storyreel.api.deps import get_owner_id, get_services
from storyreel.schemas.task import TaskCreate, TaskRead
from storyreel.services.container import Services

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", response_model=TaskRead, status_code=201)
async def create_task(
    data: TaskCreate,
    owner_id: str = Depends(get_owner_id),
    services: Services = Depends(get_services),
):
    """Persist a pending task; execution continues in the background."""
    return await services.orchestrator.create_task(owner_id, data)


@router.get("", response_model=list[TaskRead])
async def list_tasks(
    project_id: Optional[str] = Query(None, alias="projectId"),
    include_finished: bool = Query(False, alias="all"),
    owner_id: str = Depends(get_owner_id),
    services: Services = Depends(get_services),
):
    """Active tasks of the owner, or a project's recent tasks with ``all=true``."""
    if include_finished:
        if not project_id:
            raise HTTPException(status_code=400, detail="projectId is required with all=true")
        return await services.orchestrator.list_project_tasks(owner_id, project_id)
    return await services.orchestrator.list_active_tasks(owner_id, project_id)


@router.get("/{task_id}", response_model=TaskRead)
async def get_task(
    task_id: str,
    owner_id: str = Depends(get_owner_id),
    services: Services = Depends(get_services),
):
    task = await services.orchestrator.get_task(owner_id, task_id)
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


@router.delete("/{task_id}")
async def cancel_task(
    task_id: str,
    owner_id: str = Depends(get_owner_id),
    services: Services = Depends(get_services),
):
    """Cancel a task that is still pending, running or polling."""
    task = await services.orchestrator.get_task(owner_id, task_id)
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    if not await services.orchestrator.cancel_task(owner_id, task_id):
        raise HTTPException(
            status_code=409, detail=f"Task already {task.status}, cannot cancel"
        )
    return {"ok": True, "taskId": task_id, "status": "cancelled"}
