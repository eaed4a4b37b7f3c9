from __future__ import annotations
"""Service graph construction — one place that wires stores, providers and the orchestrator."""

import logging
from dataclasses import dataclass

import httpx
from sqlalchemy.ext.asyncio import AsyncEngine

from storyreel.config import Settings, get_settings
from storyreel.database import SessionFactory, create_engine_for, make_session_factory
from storyreel.services.model_catalog import ModelCatalog
from storyreel.services.orchestrator import TaskOrchestrator
from storyreel.services.project_mutex import ProjectMutex
from storyreel.services.project_store import ProjectStore
from storyreel.services.providers.base import PollPolicy, ProviderHttp, RetryPolicy
from storyreel.services.providers.registry import ProviderRegistry
from storyreel.services.references import ReferenceResolver
from storyreel.services.result_writer import ResultWriter
from storyreel.services.storage import MediaStorage
from storyreel.services.task_registry import InFlightRegistry
from storyreel.services.task_store import TaskStore

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    engine: AsyncEngine
    session_factory: SessionFactory
    http_client: httpx.AsyncClient
    storage: MediaStorage
    catalog: ModelCatalog
    task_store: TaskStore
    project_store: ProjectStore
    mutex: ProjectMutex
    providers: ProviderRegistry
    orchestrator: TaskOrchestrator

    async def aclose(self) -> None:
        """Stop executors, then release HTTP and database resources."""
        await self.orchestrator.shutdown()
        await self.http_client.aclose()
        await self.engine.dispose()
        logger.info("Services shut down")


def build_services(
    settings: Settings | None = None,
    engine: AsyncEngine | None = None,
    http_client: httpx.AsyncClient | None = None,
    providers: ProviderRegistry | None = None,
) -> Services:
    settings = settings or get_settings()
    engine = engine or create_engine_for(settings)
    session_factory = make_session_factory(engine)
    http_client = http_client or httpx.AsyncClient(follow_redirects=True)

    storage = MediaStorage(settings.MEDIA_VOLUME)
    catalog = ModelCatalog(session_factory, settings)
    task_store = TaskStore(session_factory, settings)
    project_store = ProjectStore(session_factory, storage, settings)
    mutex = ProjectMutex()

    if providers is None:
        http = ProviderHttp(
            http_client,
            retry=RetryPolicy.from_settings(settings),
            timeout=settings.HTTP_TIMEOUT_SECONDS,
            media_timeout=settings.HTTP_MEDIA_TIMEOUT_SECONDS,
        )
        providers = ProviderRegistry(http, PollPolicy.from_settings(settings), settings)

    orchestrator = TaskOrchestrator(
        task_store=task_store,
        catalog=catalog,
        providers=providers,
        writer=ResultWriter(project_store, storage),
        mutex=mutex,
        references=ReferenceResolver(storage, project_store),
        registry=InFlightRegistry(),
        settings=settings,
    )

    return Services(
        settings=settings,
        engine=engine,
        session_factory=session_factory,
        http_client=http_client,
        storage=storage,
        catalog=catalog,
        task_store=task_store,
        project_store=project_store,
        mutex=mutex,
        providers=providers,
        orchestrator=orchestrator,
    )
