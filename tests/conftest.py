"""Shared test fixtures — per-test SQLite database, media volume and mocked provider HTTP.

Puts ``backend/`` on ``sys.path`` so the ``storyreel`` package imports even
when it isn't installed.
"""
import os
import sys
from pathlib import Path
from typing import Callable

import httpx
import pytest

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
BACKEND = os.path.join(ROOT, "backend")
if BACKEND not in sys.path:
    sys.path.insert(0, BACKEND)

from storyreel.config import Settings  # noqa: E402
from storyreel.database import create_engine_for, init_db, make_session_factory  # noqa: E402
from storyreel.schemas.project import ProjectSnapshot  # noqa: E402
from storyreel.services.container import Services, build_services  # noqa: E402
from storyreel.services.model_catalog import ModelCatalog  # noqa: E402
from storyreel.services.project_store import ProjectStore  # noqa: E402
from storyreel.services.storage import MediaStorage  # noqa: E402
from storyreel.services.task_store import TaskStore  # noqa: E402

OWNER = "owner-1"
GATEWAY = "https://gateway.test"

Handler = Callable[[httpx.Request], httpx.Response]


def registry_document() -> dict:
    return {
        "providers": [
            {"id": "gateway", "name": "Gateway", "baseUrl": GATEWAY, "apiKey": "sk-test"},
            {"id": "nokey", "name": "No key", "baseUrl": GATEWAY, "apiKey": ""},
        ],
        "models": [
            {"id": "sora-2", "apiModel": "sora-2", "type": "video", "providerId": "gateway"},
            {"id": "veo", "apiModel": "veo_3_1", "type": "video", "providerId": "gateway"},
            {"id": "nano", "apiModel": "gemini-2.5-flash-image", "type": "image",
             "providerId": "gateway"},
            {"id": "gpt", "apiModel": "gpt-4o", "type": "chat", "providerId": "gateway"},
            {"id": "orphan", "apiModel": "orphan", "type": "video", "providerId": "nokey"},
        ],
        "activeModels": {"video": "sora-2", "image": "nano", "chat": "gpt"},
    }


@pytest.fixture()
def settings(tmp_path: Path) -> Settings:
    return Settings(
        _env_file=None,
        DATABASE_URL_OVERRIDE=f"sqlite+aiosqlite:///{tmp_path}/test.db",
        MEDIA_VOLUME=str(tmp_path / "media"),
        POLL_TIMEOUT_SECONDS=5.0,
        POLL_INTERVAL_MIN_SECONDS=0.01,
        POLL_INTERVAL_MAX_SECONDS=0.02,
        HTTP_RETRY_BASE_DELAY=0.0,
        SAVE_RETRY_BASE_DELAY=0.0,
    )


@pytest.fixture()
async def engine(settings: Settings):
    engine = create_engine_for(settings)
    await init_db(engine)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture()
def session_factory(engine):
    return make_session_factory(engine)


@pytest.fixture()
def storage(settings: Settings) -> MediaStorage:
    return MediaStorage(settings.MEDIA_VOLUME)


@pytest.fixture()
def project_store(session_factory, storage, settings) -> ProjectStore:
    return ProjectStore(session_factory, storage, settings)


@pytest.fixture()
def task_store(session_factory, settings) -> TaskStore:
    return TaskStore(session_factory, settings)


@pytest.fixture()
async def catalog(session_factory, settings) -> ModelCatalog:
    catalog = ModelCatalog(session_factory, settings)
    await catalog.save(OWNER, registry_document())
    return catalog


@pytest.fixture()
async def make_services(settings, engine, catalog):
    """Factory: a full service graph whose provider HTTP goes to ``handler``.

    Executors are stopped and clients closed at teardown; the engine belongs
    to the ``engine`` fixture.
    """
    built: list[Services] = []

    def factory(handler: Handler) -> Services:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        services = build_services(settings, engine=engine, http_client=client)
        built.append(services)
        return services

    yield factory

    for services in built:
        await services.orchestrator.shutdown()
        await services.http_client.aclose()


async def seed_project(project_store: ProjectStore, project_id: str = "P", **fields) -> None:
    """Save a minimal project so tasks have an episode scope to record."""
    snapshot = ProjectSnapshot.model_validate({"id": project_id, **fields})
    await project_store.save(OWNER, snapshot)
