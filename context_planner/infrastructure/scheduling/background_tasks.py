from typing import Any, Coroutine, Optional, Set
import asyncio

import structlog

logger = structlog.get_logger(__name__)


class BackgroundTasks:
    """Detached task runner for work that must never block a turn.

    Tasks are started with ``spawn`` and never joined by the caller. The
    runner keeps a strong reference until each task finishes (the event loop
    only holds weak ones) and logs anything a task raises.
    """

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str, session_id: Optional[str] = None) -> Optional[asyncio.Task]:
        """Start ``coro`` in the background; returns the task, or None if no loop is running"""

        try:
            task = asyncio.get_running_loop().create_task(coro, name=name)
        except RuntimeError:
            coro.close()
            logger.warning("No running event loop, dropping background task", task_name=name, session_id=session_id)
            return None

        self._tasks.add(task)
        task.add_done_callback(lambda t: self._on_done(t, session_id))
        return task

    def _on_done(self, task: asyncio.Task, session_id: Optional[str]) -> None:
        self._tasks.discard(task)

        if task.cancelled():
            logger.debug("Background task cancelled", task_name=task.get_name(), session_id=session_id)
            return

        error = task.exception()
        if error is not None:
            logger.error(
                "Background task failed",
                task_name=task.get_name(),
                session_id=session_id,
                error=str(error),
                error_type=type(error).__name__,
            )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for outstanding tasks; used at shutdown and in tests"""

        if not self._tasks:
            return

        done, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        for task in pending:
            task.cancel()
