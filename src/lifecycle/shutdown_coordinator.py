"""
Shutdown coordinator that turns OS termination signals into the process-wide
cancellation signal and runs shutdown handlers on the way out.

The first SIGINT/SIGTERM fires the cancellation signal. A second one skips
every graceful step and exits with ExitCode.FORCE_QUIT.
"""

import asyncio
import os
import signal
from typing import Callable, List, Optional

from lifecycle.cancellation import CancellationSignal
from models.enums import ExitCode
from models.errors import SignalHandlerAlreadyInstalledError
from utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.SHUTDOWN)

SHUTDOWN_SIGNALS = (signal.SIGINT, signal.SIGTERM)

# Process-wide: two signal consumers would both believe they own shutdown
_signal_handler_installed = False


class ShutdownCoordinator:
    """
    Coordinates signal handling and graceful shutdown of components.

    Maintains a list of shutdown handlers and executes them in priority order
    when the process is about to terminate. Handles signal registration,
    timeout management, and error logging.

    Example:
        coordinator = ShutdownCoordinator()
        coordinator.register(LeaseReleaseHandler(elector_task))
        coordinator.register(APIServerShutdownHandler(api_wrapper))

        stop = coordinator.setup_signal_handler(loop)
        await stop.wait()
        await coordinator.shutdown_all()
    """

    def __init__(
        self,
        timeout_per_handler: float = 5.0,
        total_timeout: float = 15.0,
        force_exit: Callable[[int], None] = os._exit,
    ):
        """
        Initialize shutdown coordinator.

        Args:
            timeout_per_handler: Timeout for each individual handler (seconds)
            total_timeout: Total timeout for entire shutdown sequence (seconds)
            force_exit: Called with the exit status on a second signal
        """
        self._handlers: List = []
        self._timeout_per_handler = timeout_per_handler
        self._total_timeout = total_timeout
        self._force_exit = force_exit
        self._stop: Optional[CancellationSignal] = None
        self._signals_received = 0
        self._installed_on: Optional[asyncio.AbstractEventLoop] = None

    def register(self, handler) -> None:
        """
        Register a shutdown handler.

        Handler must have:
        - shutdown_priority property (int)
        - async shutdown() method

        Args:
            handler: Object implementing IShutdownHandler protocol
        """
        if not hasattr(handler, "shutdown_priority"):
            raise ValueError(f"Handler {handler} missing shutdown_priority property")
        if not hasattr(handler, "shutdown"):
            raise ValueError(f"Handler {handler} missing shutdown() method")

        self._handlers.append(handler)
        log.debug(f"Registered shutdown handler: {handler.__class__.__name__}")

    @property
    def stop_signal(self) -> Optional[CancellationSignal]:
        return self._stop

    def setup_signal_handler(
        self, loop: Optional[asyncio.AbstractEventLoop] = None
    ) -> CancellationSignal:
        """
        Install OS signal handlers and return the cancellation signal they fire.

        May be called once per process. The guard is checked before any
        handler is installed, so a second call changes nothing.

        Args:
            loop: Running asyncio event loop (defaults to the current one)

        Raises:
            SignalHandlerAlreadyInstalledError: on the second call in a process
        """
        global _signal_handler_installed
        if _signal_handler_installed:
            raise SignalHandlerAlreadyInstalledError()

        loop = loop or asyncio.get_running_loop()
        stop = CancellationSignal()

        installed = []
        try:
            for sig in SHUTDOWN_SIGNALS:
                loop.add_signal_handler(sig, self._handle_signal, sig)
                installed.append(sig)
        except (NotImplementedError, RuntimeError, ValueError):
            for sig in installed:
                loop.remove_signal_handler(sig)
            raise

        _signal_handler_installed = True
        self._stop = stop
        self._installed_on = loop
        log.info("Signal handlers installed (SIGINT, SIGTERM)")
        return stop

    def _handle_signal(self, sig: signal.Signals) -> None:
        """Handle OS signal: first one cancels, second one force-quits."""
        self._signals_received += 1

        if self._signals_received == 1:
            log.info(f"Signal {sig.name} received → triggering shutdown")
            self._stop.fire(sig.name)
            return

        log.error(
            f"Second signal {sig.name} received → exiting immediately",
            exit_code=int(ExitCode.FORCE_QUIT),
        )
        self._force_exit(int(ExitCode.FORCE_QUIT))

    def restore_signal_handlers(self) -> None:
        """
        Remove the installed OS handlers (the once-per-process guard stays set).
        """
        if self._installed_on is None or self._installed_on.is_closed():
            return
        for sig in SHUTDOWN_SIGNALS:
            self._installed_on.remove_signal_handler(sig)
        self._installed_on = None

    async def shutdown_all(self) -> None:
        """
        Execute graceful shutdown of all handlers in priority order.

        Handlers are called in descending priority order (highest first).
        Each handler has its own timeout (timeout_per_handler) and the entire
        sequence has a global timeout (total_timeout). A failing handler is
        logged and the sequence continues.
        """
        reason = self._stop.reason if self._stop else None
        log.info("🛑 Initiating graceful shutdown sequence...", reason=reason or "UNKNOWN")

        sorted_handlers = sorted(
            self._handlers, key=lambda h: h.shutdown_priority, reverse=True
        )

        loop = asyncio.get_running_loop()
        start_time = loop.time()

        for handler in sorted_handlers:
            handler_name = handler.__class__.__name__
            priority = handler.shutdown_priority

            elapsed = loop.time() - start_time
            if elapsed > self._total_timeout:
                log.error(
                    f"⚠️  Total shutdown timeout exceeded ({elapsed:.1f}s > {self._total_timeout}s)"
                )
                break

            try:
                log.debug(f"Shutting down {handler_name} (priority={priority})...")
                await asyncio.wait_for(
                    handler.shutdown(), timeout=self._timeout_per_handler
                )
                log.debug(f"✓ {handler_name} shutdown complete")

            except asyncio.TimeoutError:
                log.error(
                    f"⚠️  {handler_name} shutdown timeout ({self._timeout_per_handler}s)"
                )
            except Exception as e:
                log.error(f"❌ Error shutting down {handler_name}: {e}", exc_info=True)

        log.info("✓ Shutdown sequence complete")
