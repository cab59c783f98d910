"""
Cancellation signal shared by the shutdown coordinator, the lease manager,
the supervisor and every control loop.
"""

from __future__ import annotations

import asyncio
from typing import Optional

from utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.LIFECYCLE)


class CancellationSignal:
    """
    Single-fire broadcast token.

    Once fired it stays fired: late observers see it immediately and the
    first reason is kept. There is no way to reset it.

    Example:
        stop = CancellationSignal()

        async def loop(stop):
            while not stop.fired:
                await stop.wait_for(1.0)  # work tick

        stop.fire("SIGTERM")
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._reason: Optional[str] = None

    @property
    def fired(self) -> bool:
        return self._event.is_set()

    @property
    def reason(self) -> Optional[str]:
        return self._reason

    def fire(self, reason: str) -> bool:
        """
        Fire the signal.

        Returns:
            True for the call that fired it, False for every later call
        """
        if self._event.is_set():
            log.debug("Cancellation already fired", reason=self._reason, ignored=reason)
            return False

        self._reason = reason
        self._event.set()
        log.info("Cancellation fired", reason=reason)
        return True

    async def wait(self) -> None:
        """Block until the signal fires."""
        await self._event.wait()

    async def wait_for(self, timeout: float) -> bool:
        """
        Block until the signal fires or `timeout` elapses.

        Returns:
            True if the signal fired
        """
        if self._event.is_set():
            return True
        try:
            await asyncio.wait_for(self._event.wait(), timeout=max(timeout, 0))
        except asyncio.TimeoutError:
            return False
        return True

    def __repr__(self) -> str:
        state = f"fired: {self._reason}" if self.fired else "pending"
        return f"<CancellationSignal {state}>"
