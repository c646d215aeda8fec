from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable


logger = logging.getLogger(__name__)


class DeferredTaskScheduler:
    """One pending delayed callback per key; rescheduling replaces the old one."""

    def __init__(self) -> None:
        self._tasks: dict[str, asyncio.Task[None]] = {}

    def schedule(
        self,
        key: str,
        delay_s: float,
        callback: Callable[[], Awaitable[None]],
    ) -> asyncio.Task[None]:
        existing = self._tasks.get(key)
        if existing is not None and existing is not asyncio.current_task():
            existing.cancel()
        task = asyncio.get_running_loop().create_task(self._run(key, delay_s, callback))
        self._tasks[key] = task
        return task

    def cancel(self, key: str) -> bool:
        task = self._tasks.pop(key, None)
        if task is None or task is asyncio.current_task():
            return False
        return task.cancel()

    def pending(self, key: str) -> bool:
        task = self._tasks.get(key)
        return task is not None and not task.done()

    async def drain(self) -> None:
        # callbacks may schedule follow-up tasks while we wait
        while True:
            pending = [task for task in self._tasks.values() if not task.done()]
            if not pending:
                return
            await asyncio.gather(*pending, return_exceptions=True)

    async def _run(
        self,
        key: str,
        delay_s: float,
        callback: Callable[[], Awaitable[None]],
    ) -> None:
        try:
            await asyncio.sleep(delay_s)
            await callback()
        except asyncio.CancelledError:
            logger.debug("deferred task %s cancelled", key)
            raise
        except Exception:
            logger.exception("deferred task %s failed", key)
        finally:
            if self._tasks.get(key) is asyncio.current_task():
                del self._tasks[key]
