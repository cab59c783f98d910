"""
Operator runtime - wires the lease manager, the supervisor and the shutdown
coordinator into one process lifecycle.

    signals → shared context → lease manager ─┐
                                              ├─ leading → supervisor
    stop / loss / loop failure ───────────────┘
                                              └─ shutdown_all() → ExitCode.FATAL

Every path that ends the process goes through shutdown_all() and returns a
non-zero exit code; an external restart policy brings the instance back as a
fresh candidate. A second signal bypasses all of it (ExitCode.FORCE_QUIT).

The lease manager keeps renewing while the loops drain after a stop and only
releases the lease once they are gone. When renewal stops on its own (loss
or a crashed lease manager) the loops are cancelled without a grace period,
and if one is still alive when another candidate could claim the lease the
process exits on the spot.
"""

from __future__ import annotations

import asyncio
import os
from typing import Any, Callable, Dict, Optional

from controllers.context import ClusterClient, ControllerContext, build_controller_context
from controllers.registry import ControllerRegistry, default_registry
from election.lease_manager import LeaderElector, default_identity
from election.lease_store import LeaseStore
from lifecycle.cancellation import CancellationSignal
from lifecycle.handlers import LeaseReleaseHandler, TaskCancellationHandler
from lifecycle.shutdown_coordinator import ShutdownCoordinator
from lifecycle.supervisor import Supervisor
from lifecycle.task_registry import TaskCategory, TaskRegistry, create_tracked_task
from models.config import OperatorConfig
from models.enums import ExitCode
from models.errors import (
    FatalError,
    LeadershipLostError,
    StoppedBeforeLeadingError,
)
from services.notification_bus import SharedInformerFactory
from utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.LIFECYCLE)


class OperatorRuntime:
    """
    One process lifetime of the operator.

    Example:
        runtime = OperatorRuntime(config, store, cluster_client, informers)
        sys.exit(await runtime.run())
    """

    def __init__(
        self,
        config: OperatorConfig,
        store: LeaseStore,
        cluster_client: ClusterClient,
        informer_factory: Optional[SharedInformerFactory] = None,
        registry: Optional[ControllerRegistry] = None,
        coordinator: Optional[ShutdownCoordinator] = None,
        exit_process: Callable[[int], None] = os._exit,
    ):
        config.validate()
        self.config = config
        self.identity = config.identity or default_identity()
        self.store = store
        self.cluster_client = cluster_client
        self.informer_factory = informer_factory or SharedInformerFactory(
            config.namespace, resync_period=config.informers_resync
        )
        self.registry = registry or default_registry()
        self.coordinator = coordinator or ShutdownCoordinator(force_exit=exit_process)

        self.elector = LeaderElector(store, config.leader_election, identity=self.identity)
        self.context: Optional[ControllerContext] = None
        self.supervisor: Optional[Supervisor] = None
        self.stop: Optional[CancellationSignal] = None
        self.current_leader: Optional[str] = None
        self.cause: Optional[BaseException] = None

        self._exit_process = exit_process
        self._elector_task: Optional[asyncio.Task] = None
        self._leading = asyncio.Event()
        self._resign: Optional[CancellationSignal] = None
        self._lost = False
        self._takeover_watchdog: Optional[asyncio.TimerHandle] = None

    # =========================================================================
    # Introspection (status API)
    # =========================================================================

    def status(self) -> Dict[str, Any]:
        record = self.elector.observed_record
        return {
            "identity": self.identity,
            "lease_name": self.elector.lease_name,
            "state": self.elector.state.name,
            "is_leader": self.elector.is_leader,
            "leader": self.elector.observed_leader,
            "leader_transitions": record.leader_transitions if record else 0,
            "stopping": bool(self.stop and self.stop.fired),
            "stop_reason": self.stop.reason if self.stop else None,
        }

    def controller_status(self) -> Dict[str, str]:
        if self.supervisor is not None:
            return self.supervisor.loop_status()
        return {name: "pending" for name in self.registry.names()}

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def run(self) -> ExitCode:
        """
        Run until a fatal condition and return the process exit code.

        Raises:
            ProgrammingError: misuse detected before anything was started
        """
        self.stop = self.coordinator.setup_signal_handler()
        self._resign = CancellationSignal()
        try:
            return await self._run(self.stop)
        finally:
            if self._takeover_watchdog is not None:
                self._takeover_watchdog.cancel()
            self.coordinator.restore_signal_handlers()

    async def _run(self, stop: CancellationSignal) -> ExitCode:
        log.info(
            "Starting operator",
            identity=self.identity,
            namespace=self.config.namespace,
        )

        try:
            self.context = await build_controller_context(
                self.config, self.cluster_client, self.informer_factory
            )
            registry_snapshot = self.registry.known()

            self._elector_task = create_tracked_task(
                self.elector.run(
                    self._resign,
                    on_acquired=self._on_acquired,
                    on_lost=self._on_lost,
                    on_new_leader=self._on_new_leader,
                ),
                category=TaskCategory.ELECTION,
                description=f"Lease manager ({self.elector.lease_name})",
                created_by="OperatorRuntime",
            )
            self._elector_task.add_done_callback(self._on_elector_done)
            self.coordinator.register(LeaseReleaseHandler(self._elector_task))
            self.coordinator.register(TaskCancellationHandler())

            if await self._wait_for_leadership(stop):
                self.supervisor = Supervisor(
                    self.context,
                    registry_snapshot,
                    shutdown_grace=self.config.shutdown_grace_period,
                )
                await self.supervisor.run(stop, self.config.workers_per_controller)
        except FatalError as e:
            self._set_cause(e)
        except Exception as e:
            log.error(f"Unexpected error: {e}", exc_info=True)
            self._set_cause(e)

        stop.fire(str(self.cause) if self.cause else "shutdown")
        # The control loops are gone; only now may the lease be handed back
        self._resign.fire(stop.reason)
        await self.coordinator.shutdown_all()

        log.error(
            f"Operator exiting: {self.cause}",
            cause=type(self.cause).__name__ if self.cause else "unknown",
            exit_code=int(ExitCode.FATAL),
        )
        return ExitCode.FATAL

    async def _wait_for_leadership(self, stop: CancellationSignal) -> bool:
        """Block until this instance leads (True) or can no longer lead (False)."""
        leading = asyncio.ensure_future(self._leading.wait())
        stopped = asyncio.ensure_future(stop.wait())
        try:
            await asyncio.wait(
                {leading, stopped, self._elector_task},
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            leading.cancel()
            stopped.cancel()

        if self._lost:
            return False
        if self._leading.is_set():
            return True

        if self.cause is None:
            self._set_cause(StoppedBeforeLeadingError(stop.reason))
        return False

    def _set_cause(self, error: BaseException) -> None:
        # The first fatal condition wins; later ones are consequences of the teardown
        if self.cause is None:
            self.cause = error

    # =========================================================================
    # Lease manager callbacks
    # =========================================================================

    def _on_acquired(self) -> None:
        log.info("Started leading", identity=self.identity)
        self._leading.set()

    def _on_lost(self) -> None:
        self._set_cause(LeadershipLostError(self.identity))
        self._step_down("leadership lost")

    def _on_new_leader(self, identity: str) -> None:
        self.current_leader = identity

    def _on_elector_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error(f"Lease manager crashed: {exc}")
            self._set_cause(exc)
            self._step_down("lease manager crashed")

    # =========================================================================
    # Stepping down
    # =========================================================================

    def _step_down(self, reason: str) -> None:
        """
        Renewal has stopped: the loops must be gone before another candidate
        can claim the lease.
        """
        if self._lost:
            return
        self._lost = True

        if self.supervisor is not None:
            self.supervisor.cut_grace(reason)

        margin = self.elector.lease_expires_in()
        self._takeover_watchdog = asyncio.get_running_loop().call_later(
            margin, self._on_takeover_deadline
        )
        log.warn("Stepping down", reason=reason, takeover_in=f"{margin:.2f}s")
        self.stop.fire(reason)

    def _on_takeover_deadline(self) -> None:
        alive = TaskRegistry.instance().active(TaskCategory.CONTROLLER)
        if not alive:
            return
        log.error(
            f"{len(alive)} control loop(s) still running when the lease can be taken over; exiting",
            loops=", ".join(r.info.description for r in alive),
            exit_code=int(ExitCode.FATAL),
        )
        self._exit_process(int(ExitCode.FATAL))
