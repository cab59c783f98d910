"""
Shared informer factory - in-process change notification routing

Implements the change-notification side the control loops consume:
- Controllers register interest during construction: informer_for(kind).add_handler(...)
- The watch layer feeds events in: publish(event)
- Nothing is delivered until start(stop) launches the delivery task, so every
  controller gets the chance to subscribe before the first event flows
"""

from __future__ import annotations

import asyncio
import inspect
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from lifecycle.cancellation import CancellationSignal
from lifecycle.task_registry import TaskCategory, create_tracked_task
from models.enums import ResourceAction
from utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.INFORMER)


@dataclass(frozen=True)
class ResourceEvent:
    """A change to one cluster object. `key` is "namespace/name"."""
    kind: str
    action: ResourceAction
    key: str
    obj: Any = None


@dataclass
class EventHandler:
    """Event handler registration"""
    handler: Callable[[ResourceEvent], Any]
    priority: int
    filter_fn: Optional[Callable[[ResourceEvent], bool]]


class Informer:
    """
    Handler list and object cache for one resource kind.

    Handlers run by priority (higher first); a failing handler is logged and
    the remaining handlers still run.
    """

    def __init__(self, kind: str):
        self.kind = kind
        self._handlers: List[EventHandler] = []
        self._cache: Dict[str, Any] = {}

    def add_handler(
        self,
        handler: Callable[[ResourceEvent], Any],
        priority: int = 0,
        filter_fn: Optional[Callable[[ResourceEvent], bool]] = None,
    ) -> None:
        """
        Subscribe to this kind's events.

        Args:
            handler: Function to call (can be async or sync)
            priority: Execution priority (higher = called first, default: 0)
            filter_fn: Optional filter (return True = handle, False = skip)
        """
        self._handlers.append(EventHandler(handler, priority, filter_fn))
        self._handlers.sort(key=lambda h: h.priority, reverse=True)

        log.debug(
            "Event handler subscribed",
            kind=self.kind,
            handler=getattr(handler, "__name__", repr(handler)),
            priority=priority,
        )

    @property
    def handler_count(self) -> int:
        return len(self._handlers)

    def cached(self) -> Dict[str, Any]:
        """Snapshot of the last known object per key."""
        return dict(self._cache)

    async def dispatch(self, event: ResourceEvent) -> None:
        if event.action is ResourceAction.DELETED:
            self._cache.pop(event.key, None)
        else:
            self._cache[event.key] = event.obj

        for entry in self._handlers:
            if entry.filter_fn and not entry.filter_fn(event):
                continue

            try:
                result = entry.handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                log.error(
                    f"Event handler failed for {event.kind} {event.action.name}",
                    handler=getattr(entry.handler, "__name__", repr(entry.handler)),
                    key=event.key,
                    error=str(e),
                )


class SharedInformerFactory:
    """
    Shared change-notification factory for all control loops.

    Example:
        factory = SharedInformerFactory(namespace="default", resync_period=30.0)

        # During controller construction
        factory.informer_for("Cluster").add_handler(controller.on_cluster_event)

        # After every controller is constructed
        factory.start(stop)

        # From the watch layer
        factory.publish(ResourceEvent("Cluster", ResourceAction.ADDED, "default/db", obj))
    """

    def __init__(self, namespace: str, resync_period: float = 0.0):
        self.namespace = namespace
        self.resync_period = resync_period
        self._informers: Dict[str, Informer] = {}
        self._queue: asyncio.Queue = asyncio.Queue()
        self._task: Optional[asyncio.Task] = None

    # -----------------------------
    # Registration
    # -----------------------------
    def informer_for(self, kind: str) -> Informer:
        """Return the shared informer for `kind`, creating it on first use."""
        informer = self._informers.get(kind)
        if informer is None:
            informer = Informer(kind)
            self._informers[kind] = informer
            if self.started:
                log.warn("Informer registered after delivery started", kind=kind)
        return informer

    def kinds(self) -> List[str]:
        return list(self._informers)

    # -----------------------------
    # Input
    # -----------------------------
    def publish(self, event: ResourceEvent) -> None:
        """Queue an event. Buffered until start() if delivery is not running yet."""
        self._queue.put_nowait(event)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    # -----------------------------
    # Delivery
    # -----------------------------
    @property
    def started(self) -> bool:
        return self._task is not None

    def start(self, stop: CancellationSignal) -> asyncio.Task:
        """
        Start delivering queued and future events until `stop` fires.

        Calling start() again returns the already running delivery task.
        """
        if self._task is not None:
            return self._task

        log.info(
            "Starting shared informers",
            kinds=", ".join(self._informers) or "<none>",
            pending=self._queue.qsize(),
        )
        self._task = create_tracked_task(
            self._deliver(stop),
            category=TaskCategory.INFORMER,
            description="Shared informer delivery",
        )
        return self._task

    async def _deliver(self, stop: CancellationSignal) -> None:
        loop = asyncio.get_running_loop()
        next_resync = loop.time() + self.resync_period if self.resync_period > 0 else None

        while not stop.fired:
            timeout = None
            if next_resync is not None:
                timeout = max(next_resync - loop.time(), 0.0)

            getter = asyncio.ensure_future(self._queue.get())
            stopper = asyncio.ensure_future(stop.wait())
            try:
                done, _ = await asyncio.wait(
                    {getter, stopper}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
                )
            finally:
                stopper.cancel()
                if not getter.done():
                    getter.cancel()

            if getter in done:
                await self._dispatch(getter.result())

            if next_resync is not None and loop.time() >= next_resync:
                await self._resync()
                next_resync = loop.time() + self.resync_period

        log.debug("Informer delivery stopped", undelivered=self._queue.qsize())

    async def _dispatch(self, event: ResourceEvent) -> None:
        informer = self._informers.get(event.kind)
        if informer is None:
            log.debug("No informer for event", kind=event.kind, key=event.key)
            return
        await informer.dispatch(event)

    async def _resync(self) -> None:
        """Re-deliver every cached object as MODIFIED."""
        for informer in list(self._informers.values()):
            for key, obj in informer.cached().items():
                await informer.dispatch(
                    ResourceEvent(informer.kind, ResourceAction.MODIFIED, key, obj)
                )
