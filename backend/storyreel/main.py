from __future__ import annotations
"""StoryReel — FastAPI application entry point.

Builds the service graph, resumes unfinished generation tasks, mounts the
API routes and configures CORS.
"""

import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from storyreel.api.router import api_router
from storyreel.config import get_settings
from storyreel.services.container import build_services

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: build services and recover tasks; tear down on shutdown."""
    logger.info("StoryReel starting up...")
    logger.info("Database: %s@%s/%s", settings.DB_USER, settings.DB_HOST, settings.DB_NAME)

    # Ensure media_volume directory exists
    os.makedirs(settings.MEDIA_VOLUME, exist_ok=True)

    services = build_services(settings)
    app.state.services = services

    # Tasks interrupted by the previous process
    report = await services.orchestrator.recover_tasks()
    if report.failed:
        logger.warning("Startup recovery failed %d task(s): %s",
                       len(report.failed), ", ".join(report.failed))

    yield

    await services.aclose()
    logger.info("StoryReel shut down")


app = FastAPI(
    title="StoryReel API",
    description="Short-drama production backend — projects, model registry and generation tasks",
    version="0.1.0",
    lifespan=lifespan,
    redirect_slashes=False,
)

# CORS: allow the frontend dev server (CORS_ORIGINS)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.CORS_ORIGINS.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {"service": settings.APP_NAME, "status": "running"}


@app.get("/health")
async def health():
    """Detailed health check."""
    services = getattr(app.state, "services", None)
    return {
        "status": "healthy",
        "database": settings.DB_HOST,
        "in_flight_tasks": len(services.orchestrator.registry) if services else 0,
    }
