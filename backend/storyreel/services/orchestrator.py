from __future__ import annotations
"""Task orchestrator — drives generation tasks from pending to a terminal status.

Lifecycle::

    pending → running → polling → completed | failed
                     ↘ completed | failed
    pending | running | polling → cancelled   (owner action only)

Creation persists the row and schedules execution in the background; the
row is the only state that outlives the process. On startup
:meth:`TaskOrchestrator.recover_tasks` resumes polling tasks from their
persisted provider handle, re-dispatches tasks that never started, and fails
tasks that were interrupted inside a synchronous provider call.

Cancellation writes ``cancelled`` first and then interrupts the live
executor, if any. Executors re-read the row on every poll tick and before
writing a result, so a task without a live executor still stops at its next
check.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Awaitable

from storyreel.config import Settings, get_settings
from storyreel.errors import ProviderReportedFailure, TaskCancelled, UnrecoverableInterruption
from storyreel.models.task import GenerationTask, TaskKind, TaskStatus
from storyreel.prompts import wrap_prompt_with_reference_guide
from storyreel.schemas.task import TaskCreate
from storyreel.services.model_catalog import ModelCatalog
from storyreel.services.project_mutex import ProjectMutex
from storyreel.services.providers.base import GenerationResult, ProgressCallback
from storyreel.services.providers.registry import ProviderRegistry
from storyreel.services.references import ReferenceResolver
from storyreel.services.result_writer import ResultWriter
from storyreel.services.task_registry import InFlightRegistry
from storyreel.services.task_store import TaskStore

logger = logging.getLogger(__name__)


@dataclass
class RecoveryReport:
    resumed: list[str] = field(default_factory=list)
    redispatched: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


class TaskOrchestrator:
    def __init__(
        self,
        task_store: TaskStore,
        catalog: ModelCatalog,
        providers: ProviderRegistry,
        writer: ResultWriter,
        mutex: ProjectMutex,
        references: ReferenceResolver,
        registry: InFlightRegistry | None = None,
        settings: Settings | None = None,
    ):
        self.task_store = task_store
        self.catalog = catalog
        self.providers = providers
        self.writer = writer
        self.mutex = mutex
        self.references = references
        self.registry = registry or InFlightRegistry()
        self.settings = settings or get_settings()
        self._recovered = False

    # ------------------------------------------------------------------
    # Caller-facing operations
    # ------------------------------------------------------------------

    async def create_task(self, owner_id: str, request: TaskCreate) -> GenerationTask:
        """Persist a pending task and start executing it in the background."""
        task = await self.task_store.create(owner_id, request)
        self.dispatch(task.id)
        return task

    def dispatch(self, task_id: str) -> asyncio.Task | None:
        if self.registry.is_running(task_id):
            return None
        return self.registry.start(task_id, self._guard(task_id, self.execute_task(task_id)))

    async def get_task(self, owner_id: str, task_id: str) -> GenerationTask | None:
        return await self.task_store.get(task_id, owner_id)

    async def list_active_tasks(
        self, owner_id: str, project_id: str | None = None
    ) -> list[GenerationTask]:
        return await self.task_store.list_active(owner_id, project_id)

    async def list_project_tasks(self, owner_id: str, project_id: str) -> list[GenerationTask]:
        return await self.task_store.list_for_project(owner_id, project_id)

    async def cancel_task(self, owner_id: str, task_id: str) -> bool:
        """Cancel an active task. False if it doesn't exist or already finished."""
        task = await self.task_store.get(task_id, owner_id)
        if task is None:
            return False
        # Serialized with _finish
        async with self.mutex.hold(task.owner_id, task.project_id):
            if not await self.task_store.cancel(task_id):
                return False
        if self.registry.cancel(task_id):
            logger.info("Task %s cancelled; executor interrupted", task_id)
        else:
            logger.info("Task %s cancelled; no live executor", task_id)
        return True

    async def wait(self, task_id: str) -> None:
        """Wait until the executor of ``task_id`` (if any) has finished."""
        await self.registry.wait(task_id)

    async def shutdown(self) -> None:
        """Stop executors. Their rows stay active and are picked up by recovery."""
        await self.registry.shutdown()

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    async def execute_task(self, task_id: str) -> None:
        """Run a pending task to completion (or failure)."""
        task = await self.task_store.get(task_id)
        if task is None or task.status != TaskStatus.PENDING.value:
            logger.debug("Task %s is not pending, nothing to execute", task_id)
            return

        params = self.task_store.params_of(task)
        kind = TaskKind(task.kind)
        binding = await self.catalog.resolve(task.owner_id, kind, params.model_id)
        adapter = self.providers.resolve(kind, binding)

        if not await self.task_store.mark_running(task_id, adapter.name):
            raise TaskCancelled(f"Task {task_id} left pending before it started")
        logger.info("Task %s running (%s via %s)", task_id, binding.api_model, adapter.name)

        request = await self._prepare(task, params)
        created = await adapter.create(binding, request)

        if created.handle:
            if not adapter.supports_polling:
                raise ProviderReportedFailure(f"{adapter.name} returned a job handle it cannot poll")
            if not await self.task_store.attach_handle(task_id, adapter.name, created.handle):
                raise TaskCancelled(f"Task {task_id} stopped before polling")
            logger.info("Task %s polling %s job %s", task_id, adapter.name, created.handle)
            result = await adapter.poll(binding, created.handle, self._progress_hook(task_id))
        elif created.result is not None:
            result = created.result
        else:
            raise ProviderReportedFailure(f"{adapter.name} returned neither a job handle nor a result")

        await self._finish(task, result)

    async def _resume(self, task: GenerationTask) -> None:
        """Continue polling a task from its persisted provider handle."""
        params = self.task_store.params_of(task)
        binding = await self.catalog.resolve(task.owner_id, TaskKind(task.kind), params.model_id)
        adapter = self.providers.get(task.provider or "")
        logger.info("Task %s resuming %s job %s", task.id, adapter.name, task.provider_task_id)
        result = await adapter.poll(binding, task.provider_task_id, self._progress_hook(task.id))
        await self._finish(task, result)

    async def _prepare(self, task: GenerationTask, params: TaskCreate) -> TaskCreate:
        """Resolve reference images and wrap the prompt for image tasks."""
        if params.type is not TaskKind.IMAGE:
            return params
        references = await self.references.resolve(task.owner_id, params.reference_images)
        prompt = wrap_prompt_with_reference_guide(
            params.prompt, len(references), params.is_variation, params.has_turnaround
        )
        return params.model_copy(update={"reference_images": references, "prompt": prompt})

    def _progress_hook(self, task_id: str) -> ProgressCallback:
        async def on_progress(progress: int) -> None:
            if not await self.task_store.update_progress(task_id, progress):
                raise TaskCancelled(f"Task {task_id} is no longer active")

        return on_progress

    async def _finish(self, task: GenerationTask, result: GenerationResult) -> None:
        """Write the result and mark the task completed, under the project lock."""
        async with self.mutex.hold(task.owner_id, task.project_id):
            if not await self.task_store.is_active(task.id):
                raise TaskCancelled(f"Task {task.id} finished elsewhere; result discarded")
            summary = await self.writer.write(task, result)
            if not await self.task_store.complete(task.id, summary):
                logger.warning("Task %s could not be marked completed", task.id)
                return
        logger.info("Task %s completed", task.id)

    async def _guard(self, task_id: str, work: Awaitable[None]) -> None:
        """Run ``work`` and record any failure on the task row."""
        try:
            await work
        except asyncio.CancelledError:
            logger.info("Task %s executor interrupted", task_id)
            raise
        except TaskCancelled as e:
            logger.info("Task %s stopped: %s", task_id, e)
        except Exception as e:
            await self._fail(task_id, e)

    async def _fail(self, task_id: str, exc: BaseException) -> None:
        message = f"{type(exc).__name__}: {exc}"
        if await self.task_store.fail(task_id, message):
            logger.error("Task %s failed: %s", task_id, message)
        else:
            logger.warning("Task %s error after it left the active state: %s", task_id, message)

    # ------------------------------------------------------------------
    # Recovery
    # ------------------------------------------------------------------

    async def recover_tasks(self) -> RecoveryReport:
        """Pick up tasks left unfinished by a previous process. Runs once."""
        report = RecoveryReport()
        if self._recovered:
            logger.warning("Task recovery already ran; skipping")
            return report
        self._recovered = True

        tasks = await self.task_store.list_unfinished()
        if not tasks:
            logger.info("No unfinished tasks to recover")
            return report
        logger.info("Recovering %d unfinished task(s)", len(tasks))

        for task in tasks:
            if self.registry.is_running(task.id):
                continue
            if task.status == TaskStatus.PENDING.value:
                self.dispatch(task.id)
                report.redispatched.append(task.id)
            elif task.provider_task_id:
                self.registry.start(task.id, self._guard(task.id, self._resume(task)))
                report.resumed.append(task.id)
            else:
                await self._fail(task.id, UnrecoverableInterruption(
                    "server restarted during a synchronous provider call"
                ))
                report.failed.append(task.id)

        logger.info(
            "Recovery: %d resumed, %d re-dispatched, %d failed",
            len(report.resumed), len(report.redispatched), len(report.failed),
        )
        return report
