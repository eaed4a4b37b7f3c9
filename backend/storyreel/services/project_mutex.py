from __future__ import annotations
"""Per-project write mutex.

Serializes writes to the same (owner, project) so overlapping save
transactions don't pile up on the same rows. Each holder waits on the
previous holder's future; the entry is pruned once its holder finishes and
nobody queued behind it.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

LockKey = tuple[str, str]


class ProjectMutex:
    def __init__(self) -> None:
        self._tails: dict[LockKey, asyncio.Future[None]] = {}

    def __len__(self) -> int:
        return len(self._tails)

    def is_locked(self, owner_id: str, project_id: str) -> bool:
        return (owner_id, project_id) in self._tails

    @asynccontextmanager
    async def hold(self, owner_id: str, project_id: str) -> AsyncIterator[None]:
        key = (owner_id, project_id)
        prev = self._tails.get(key)
        mine: asyncio.Future[None] = asyncio.get_running_loop().create_future()
        self._tails[key] = mine

        def release(_: object = None) -> None:
            if not mine.done():
                mine.set_result(None)
            if self._tails.get(key) is mine:
                del self._tails[key]

        try:
            if prev is not None:
                logger.debug("Waiting for project lock %s/%s", owner_id, project_id)
                await asyncio.shield(prev)
            yield
        finally:
            # A waiter cancelled while queued must not let its successor
            # overtake the holder it was waiting on.
            if prev is not None and not prev.done():
                prev.add_done_callback(release)
            else:
                release()

    async def run(
        self, owner_id: str, project_id: str, fn: Callable[[], Awaitable[T]]
    ) -> T:
        """Await ``fn()`` while holding the lock for (owner, project)."""
        async with self.hold(owner_id, project_id):
            return await fn()
