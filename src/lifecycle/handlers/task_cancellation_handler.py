from __future__ import annotations
import asyncio
from typing import List, Optional

from lifecycle.shutdown_protocol import IShutdownHandler
from lifecycle.task_registry import TaskRegistry
from utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.SHUTDOWN)


class TaskCancellationHandler(IShutdownHandler):
    """
    Cancels and awaits every tracked task still running at shutdown.

    Tasks passed in `exclude` (typically the task running the shutdown
    sequence itself) are left alone.

    Priority: 40 (last)
    """

    def __init__(self, exclude: Optional[List[asyncio.Task]] = None):
        """
        Args:
            exclude: Tasks that must not be cancelled
        """
        self.exclude = list(exclude or [])

    @property
    def shutdown_priority(self) -> int:
        return 40

    async def shutdown(self) -> None:
        current = asyncio.current_task()
        exclude = self.exclude + ([current] if current is not None else [])
        tasks = TaskRegistry.instance().get_tasks_for_shutdown(exclude=exclude)

        if not tasks:
            log.debug("No background tasks left to cancel")
            return

        log.info(f"Cancelling {len(tasks)} remaining background task(s)...")
        for task in tasks:
            task.cancel()
            log.debug(f"Cancelled task: {task.get_name()}")

        await asyncio.gather(*tasks, return_exceptions=True)
        log.debug("All tasks cancelled")
