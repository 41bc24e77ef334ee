import asyncio
import logging
from typing import Coroutine, Dict, List, Optional

logger = logging.getLogger(__name__)


class TaskSupervisor:
    """Owns background asyncio tasks so their failures are logged, never lost or raised."""

    def __init__(self):
        self._tasks: Dict[str, asyncio.Task] = {}

    def spawn(self, name: str, coro: Coroutine) -> asyncio.Task:
        if name in self._tasks and not self._tasks[name].done():
            coro.close()
            raise ValueError(f"task {name!r} is already running")
        task = asyncio.create_task(coro, name=name)
        self._tasks[name] = task
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        name = task.get_name()
        if self._tasks.get(name) is task:
            del self._tasks[name]
        if task.cancelled():
            logger.debug("task %s cancelled", name)
            return
        exc = task.exception()
        if exc is not None:
            logger.error("background task %s failed: %s", name, exc, exc_info=exc)

    def names(self) -> List[str]:
        return list(self._tasks)

    def get(self, name: str) -> Optional[asyncio.Task]:
        return self._tasks.get(name)

    def cancel(self, name: str) -> bool:
        task = self._tasks.get(name)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    async def shutdown(self) -> None:
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
