from __future__ import annotations
"""In-memory registry of executing tasks.

One ``asyncio.Task`` per generation task id at most. Cancelling the
``asyncio.Task`` interrupts whatever network call or poll wait it is
suspended in. The registry is an instance owned by the orchestrator, so
independent orchestrators (tests) never share executors.
"""

import asyncio
import logging
from typing import Any, Coroutine

logger = logging.getLogger(__name__)


class InFlightRegistry:
    def __init__(self) -> None:
        self._running: dict[str, asyncio.Task[Any]] = {}

    def __len__(self) -> int:
        return len(self._running)

    def __contains__(self, task_id: str) -> bool:
        return self.is_running(task_id)

    def is_running(self, task_id: str) -> bool:
        running = self._running.get(task_id)
        return running is not None and not running.done()

    def start(self, task_id: str, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any] | None:
        """Schedule ``coro`` as the executor of ``task_id``.

        Returns None (and closes ``coro``) when an executor already exists.
        """
        if self.is_running(task_id):
            coro.close()
            logger.warning("Task %s already has an executor, not starting another", task_id)
            return None

        running = asyncio.create_task(coro, name=f"generation-{task_id}")
        self._running[task_id] = running

        def _forget(done: asyncio.Task[Any]) -> None:
            if self._running.get(task_id) is done:
                del self._running[task_id]

        running.add_done_callback(_forget)
        return running

    def cancel(self, task_id: str) -> bool:
        """Signal the executor of ``task_id``; False if none is live."""
        running = self._running.get(task_id)
        if running is None or running.done():
            return False
        running.cancel()
        return True

    async def wait(self, task_id: str) -> None:
        running = self._running.get(task_id)
        if running is not None:
            await asyncio.gather(running, return_exceptions=True)

    async def drain(self) -> None:
        """Wait for every executor currently registered."""
        while True:
            pending = [t for t in self._running.values() if not t.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel all executors and wait for them to unwind."""
        if not self._running:
            return
        logger.info("Stopping %d in-flight task executor(s)", len(self._running))
        for running in list(self._running.values()):
            running.cancel()
        await asyncio.gather(*list(self._running.values()), return_exceptions=True)
