"""
Control loop protocol and factory type.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Protocol

if TYPE_CHECKING:
    from controllers.context import ControllerContext
    from lifecycle.cancellation import CancellationSignal


class ControlLoop(Protocol):
    """
    A long-running reconcile loop for one resource kind.

    run() must return promptly once `stop` fires. Raising from run() is
    reserved for conditions that should terminate the whole process.

    Example:
        class ClusterController:
            async def run(self, workers: int, stop: CancellationSignal) -> None:
                await stop.wait()
    """

    async def run(self, workers: int, stop: "CancellationSignal") -> None:
        ...


ControllerFactory = Callable[["ControllerContext"], ControlLoop]
