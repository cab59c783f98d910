from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional, Set

from controllers.context import ControllerContext
from lifecycle.cancellation import CancellationSignal
from services.notification_bus import ResourceEvent
from utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.CONTROLLER)

CLUSTER_KIND = "Cluster"

Reconciler = Callable[[str], Awaitable[None]]


async def _noop_reconcile(key: str) -> None:
    log.debug("No reconciler configured", key=key)


class ClusterController:
    """
    Control loop for Cluster resources.

    Subscribes to Cluster change notifications at construction time, queues
    the affected keys (deduplicated while pending) and runs `workers` worker
    coroutines that pass each key to the reconciler. Workers stop as soon as
    the cancellation signal fires.

    The reconcile step itself is pluggable; the default one only logs.
    """

    def __init__(self, context: ControllerContext, reconcile: Optional[Reconciler] = None):
        """
        Initialize ClusterController

        Args:
            context: Shared controller context
            reconcile: Coroutine function called with each "namespace/name" key
        """
        self.context = context
        self.reconcile = reconcile or _noop_reconcile
        self._queue: asyncio.Queue = asyncio.Queue()
        self._pending: Set[str] = set()
        self.processed = 0

        context.informer_factory.informer_for(CLUSTER_KIND).add_handler(self.on_cluster_event)

    def on_cluster_event(self, event: ResourceEvent) -> None:
        """Informer handler: enqueue the key unless it is already waiting."""
        if event.key in self._pending:
            return
        self._pending.add(event.key)
        self._queue.put_nowait(event.key)

    async def run(self, workers: int, stop: CancellationSignal) -> None:
        """
        Run the worker pool until `stop` fires.

        A reconcile error is logged and the key is dropped; only errors that
        escape the worker pool itself propagate (and terminate the process).
        """
        log.info("Starting Cluster controller", workers=workers, namespace=self.context.namespace)

        pool = [
            asyncio.ensure_future(self._worker(i, stop))
            for i in range(workers)
        ]
        try:
            await stop.wait()
        finally:
            for task in pool:
                task.cancel()
            results = await asyncio.gather(*pool, return_exceptions=True)

        for result in results:
            if isinstance(result, Exception):
                raise result

        log.info("Cluster controller stopped", processed=self.processed)

    async def _worker(self, index: int, stop: CancellationSignal) -> None:
        while not stop.fired:
            key = await self._queue.get()
            self._pending.discard(key)
            try:
                await self.reconcile(key)
            except Exception as e:
                log.error("Error syncing cluster", key=key, worker=index, error=str(e))
            else:
                self.processed += 1
