from __future__ import annotations
import asyncio
from typing import Optional

from lifecycle.shutdown_protocol import IShutdownHandler
from utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.SHUTDOWN)


class LeaseReleaseHandler(IShutdownHandler):
    """
    Waits for the lease manager task to finish.

    Once the stop signal has fired the lease manager stops renewing and, if
    configured, hands the lease back so the next leader does not have to wait
    out a full lease duration. If it does not finish within `timeout` the task
    is cancelled and the lease simply expires.

    Priority: 100 (first)
    """

    def __init__(self, elector_task: Optional[asyncio.Task] = None, timeout: float = 3.0):
        self.elector_task = elector_task
        self.timeout = timeout

    @property
    def shutdown_priority(self) -> int:
        return 100

    async def shutdown(self) -> None:
        task = self.elector_task
        if task is None or task.done():
            log.debug("Lease manager already finished")
            return

        log.info("Waiting for lease manager to release the lease...")
        done, _ = await asyncio.wait({task}, timeout=self.timeout)
        if done:
            return

        log.warn(f"Lease manager did not finish within {self.timeout}s; lease will expire")
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
