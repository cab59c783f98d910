"""
Supervisor - runs every registered control loop while this instance leads.

Given the frozen registry snapshot and the shared controller context, the
supervisor constructs every loop, launches one tracked task per loop, starts
informer delivery and then waits for the first of:

- a loop raising      → ControlLoopFailedError(name, cause)
- the stop signal     → ControlLoopsExhaustedError
- every loop returned → ControlLoopsExhaustedError

It never returns normally. On every exit path the stop signal is fired,
the remaining loops get `shutdown_grace` seconds to drain and are then
cancelled. cut_grace() revokes whatever is left of the grace period, which
the runtime does as soon as leadership is lost.
"""

from __future__ import annotations

import asyncio
from typing import Dict, List, Mapping, Optional

from controllers.context import ControllerContext
from controllers.interface import ControlLoop, ControllerFactory
from lifecycle.cancellation import CancellationSignal
from lifecycle.task_registry import TaskCategory, create_tracked_task
from models.errors import ControlLoopFailedError, ControlLoopsExhaustedError
from utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.SUPERVISOR)


class Supervisor:
    """
    Lifecycle owner of the control loops.

    Example:
        supervisor = Supervisor(context, known(), shutdown_grace=30.0)
        try:
            await supervisor.run(stop, workers_per_loop=2)
        except FatalError as e:
            ...  # always ends up here
    """

    def __init__(
        self,
        context: ControllerContext,
        registry: Mapping[str, ControllerFactory],
        shutdown_grace: float = 30.0,
    ):
        if shutdown_grace < 0:
            raise ValueError("shutdown_grace must be >= 0")
        self._context = context
        self._registry = registry
        self._shutdown_grace = shutdown_grace
        self._loops: Dict[str, ControlLoop] = {}
        self._tasks: Dict[str, asyncio.Task] = {}
        self._hurry = asyncio.Event()

    @property
    def loop_names(self) -> List[str]:
        return list(self._loops)

    def loop_status(self) -> Dict[str, str]:
        """Per-loop state for the status API: pending, running, completed, failed, cancelled."""
        status = {}
        for name in self._registry:
            task = self._tasks.get(name)
            if task is None:
                status[name] = "pending"
            elif not task.done():
                status[name] = "running"
            elif task.cancelled():
                status[name] = "cancelled"
            elif task.exception() is not None:
                status[name] = "failed"
            else:
                status[name] = "completed"
        return status

    async def run(self, stop: CancellationSignal, workers_per_loop: int) -> None:
        """
        Construct and run every registered loop.

        Raises:
            ControlLoopFailedError: a loop (or its factory) raised
            ControlLoopsExhaustedError: stop fired or every loop returned
        """
        if workers_per_loop < 1:
            raise ValueError("workers_per_loop must be >= 1")

        self._construct_all(stop)

        for name, loop in self._loops.items():
            self._tasks[name] = create_tracked_task(
                loop.run(workers_per_loop, stop),
                category=TaskCategory.CONTROLLER,
                description=f"Control loop: {name}",
                created_by="Supervisor",
            )

        # Loops have registered their informer interest during construction
        self._context.informer_factory.start(stop)

        log.info(
            f"Supervising {len(self._tasks)} control loop(s)",
            loops=", ".join(self._tasks) or "<none>",
            workers=workers_per_loop,
        )

        failure = await self._wait_first(stop)
        await self._drain()

        if failure is not None:
            name, cause = failure
            raise ControlLoopFailedError(name, cause) from cause
        raise ControlLoopsExhaustedError(stop.reason)

    def _construct_all(self, stop: CancellationSignal) -> None:
        for name, factory in self._registry.items():
            log.info(f"Registering controller: {name}")
            try:
                self._loops[name] = factory(self._context)
            except Exception as e:
                log.error(f"Failed to construct controller {name}", error=str(e), exc_info=True)
                stop.fire(f"controller {name} failed to start")
                raise ControlLoopFailedError(name, e) from e

    async def _wait_first(self, stop: CancellationSignal) -> Optional[tuple]:
        """
        Block until a loop fails, every loop returns, or stop fires.

        Returns:
            (name, exception) of the first failed loop, or None
        """
        names = {task: name for name, task in self._tasks.items()}
        pending = set(names)
        stopper = asyncio.ensure_future(stop.wait())

        try:
            while pending:
                done, _ = await asyncio.wait(
                    pending | {stopper}, return_when=asyncio.FIRST_COMPLETED
                )
                for task in done:
                    if task is stopper:
                        continue
                    pending.discard(task)
                    if task.cancelled():
                        continue
                    exc = task.exception()
                    if exc is not None:
                        name = names[task]
                        log.error(f"Control loop {name} failed", error=f"{type(exc).__name__}: {exc}")
                        stop.fire(f"controller {name} failed")
                        return name, exc
                    log.warn(f"Control loop {names[task]} returned")

                if stopper in done:
                    log.info("Stop requested; draining control loops", reason=stop.reason)
                    return None
        finally:
            stopper.cancel()

        log.warn("All control loops have exited")
        stop.fire("control loops exited")
        return None

    def cut_grace(self, reason: str) -> None:
        """
        Drop the remaining grace period: running loops are cancelled at once.

        Used when this instance may no longer act as leader.
        """
        if self._hurry.is_set():
            return
        log.warn("Grace period revoked; cancelling control loops now", reason=reason)
        self._shutdown_grace = 0.0
        self._hurry.set()

    async def _drain(self) -> None:
        """Give running loops the grace period, then cancel the stragglers."""
        running = {t for t in self._tasks.values() if not t.done()}
        if not running:
            return

        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._shutdown_grace
        hurry = asyncio.ensure_future(self._hurry.wait())
        try:
            while running and not self._hurry.is_set():
                timeout = deadline - loop.time()
                if timeout <= 0:
                    break
                done, _ = await asyncio.wait(
                    running | {hurry}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
                )
                running -= done
        finally:
            hurry.cancel()

        stragglers = [t for t in running if not t.done()]
        if not stragglers:
            log.info("All control loops drained")
            return

        log.warn(
            f"Cancelling {len(stragglers)} control loop(s) after grace period",
            grace=f"{self._shutdown_grace}s",
        )
        for task in stragglers:
            task.cancel()
        await asyncio.gather(*stragglers, return_exceptions=True)
