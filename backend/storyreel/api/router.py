from __future__ import annotations
"""Master API router — mounts all sub-routers."""

from fastapi import APIRouter

from storyreel.api.models import router as models_router
from storyreel.api.projects import router as projects_router
from storyreel.api.tasks import router as tasks_router

api_router = APIRouter(prefix="/api", redirect_slashes=False)

api_router.include_router(tasks_router, prefix="/tasks", tags=["Tasks"])
api_router.include_router(projects_router, prefix="/projects", tags=["Projects"])
api_router.include_router(models_router, prefix="/models", tags=["Models"])
