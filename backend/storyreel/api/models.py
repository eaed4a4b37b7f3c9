from __future__ import annotations
"""Model registry API — each owner's providers, models and active selections."""

from typing import Any

from fastapi import APIRouter, Body, Depends

from storyreel.api.deps import get_owner_id, get_services
from storyreel.services.container import Services

router = APIRouter()


@router.get("/registry")
async def get_registry(
    owner_id: str = Depends(get_owner_id),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    return await services.catalog.load(owner_id) or {}


@router.put("/registry")
async def save_registry(
    data: dict[str, Any] = Body(...),
    owner_id: str = Depends(get_owner_id),
    services: Services = Depends(get_services),
) -> dict[str, Any]:
    """Replace the owner's registry document."""
    await services.catalog.save(owner_id, data)
    return {"ok": True}
