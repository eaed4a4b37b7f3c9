from __future__ import annotations
"""Project API — full-snapshot saves, loads, export, delete and media serving."""

import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Response
from fastapi.responses import RedirectResponse

from storyreel.api.deps import get_owner_id, get_services
from storyreel.errors import ProjectStoreError, StorageLockContention
from storyreel.schemas.project import ProjectSnapshot, ProjectSummary
from storyreel.services.container import Services
from storyreel.services.storage import (
    ENTITY_TYPES,
    DecodedMedia,
    is_data_uri,
    is_file_reference,
    is_internal_media_url,
    is_remote_url,
    media_api_url,
    parse_data_uri,
    unwrap_legacy_value,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("", response_model=list[ProjectSummary])
async def list_projects(
    owner_id: str = Depends(get_owner_id),
    services: Services = Depends(get_services),
):
    """List the owner's projects, most recently updated first (metadata only)."""
    return await services.project_store.list_projects(owner_id)


@router.get("/{project_id}")
async def get_project(
    project_id: str,
    owner_id: str = Depends(get_owner_id),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    project = await services.project_store.load(owner_id, project_id)
    if project is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


@router.get("/{project_id}/export")
async def export_project(
    project_id: str,
    owner_id: str = Depends(get_owner_id),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Every episode with full chapter and script bodies."""
    project = await services.project_store.export(owner_id, project_id)
    if project is None:
        raise HTTPException(status_code=404, detail="Project not found")
    return project


@router.put("/{project_id}")
async def save_project(
    project_id: str,
    snapshot: ProjectSnapshot,
    owner_id: str = Depends(get_owner_id),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Full-replace save of the project snapshot."""
    if snapshot.id != project_id:
        raise HTTPException(status_code=400, detail="Snapshot id does not match the URL")

    store = services.project_store
    try:
        await services.mutex.run(owner_id, project_id, lambda: store.save(owner_id, snapshot))
    except StorageLockContention as e:
        logger.error("Save of project %s gave up: %s", project_id, e)
        raise HTTPException(status_code=503, detail="Project is busy, try again")
    except ProjectStoreError as e:
        raise HTTPException(status_code=409, detail=str(e))
    return {"ok": True, "id": project_id}


@router.delete("/{project_id}")
async def delete_project(
    project_id: str,
    owner_id: str = Depends(get_owner_id),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    deleted = await services.mutex.run(
        owner_id, project_id, lambda: services.project_store.delete(owner_id, project_id)
    )
    if not deleted:
        raise HTTPException(status_code=404, detail="Project not found")
    return {"ok": True}


# ---------------------------------------------------------------------------
# Media
# ---------------------------------------------------------------------------

@router.get("/{project_id}/media/{entity_type}/{entity_id}")
async def get_media(
    project_id: str,
    entity_type: str,
    entity_id: str,
    owner_id: str = Depends(get_owner_id),
    services: Services = Depends(get_services),
):
    """Serve an entity's media from durable storage or its stored value."""
    if entity_type not in ENTITY_TYPES:
        raise HTTPException(status_code=404, detail="Unknown media type")
    if not await services.project_store.exists(owner_id, project_id):
        raise HTTPException(status_code=404, detail="Project not found")

    storage = services.storage
    if entity_type == "task":
        value = await _task_media_value(services, owner_id, project_id, entity_id)
    else:
        # Stored value first; a file from an earlier save may be stale
        value = await services.project_store.media_reference(
            owner_id, project_id, entity_type, entity_id
        )
        if not value:
            value = await storage.locate(project_id, entity_type, entity_id)

    if not value:
        raise HTTPException(status_code=404, detail="Media not found")

    if value.startswith("{"):
        inline, url = unwrap_legacy_value(value)
        value = inline or url or ""
    if is_file_reference(value):
        media = await storage.read(value)
        if media is not None:
            return _media_response(media)
    elif is_data_uri(value):
        media = parse_data_uri(value)
        if media is not None:
            return _media_response(media)
    elif is_remote_url(value):
        return RedirectResponse(value, status_code=302)
    elif is_internal_media_url(value) and value != media_api_url(project_id, entity_type, entity_id):
        return RedirectResponse(value, status_code=302)

    raise HTTPException(status_code=404, detail="Media not found")


async def _task_media_value(
    services: Services, owner_id: str, project_id: str, task_id: str
) -> str | None:
    task = await services.task_store.get(task_id, owner_id)
    if task is None or task.project_id != project_id or not task.result:
        return None
    try:
        result = json.loads(task.result)
    except ValueError:
        return None
    if not isinstance(result, dict):
        return None
    return result.get("reference") or result.get("url")


def _media_response(media: DecodedMedia) -> Response:
    return Response(
        content=media.data,
        media_type=media.mime,
        headers={"Cache-Control": "private, max-age=3600"},
    )
