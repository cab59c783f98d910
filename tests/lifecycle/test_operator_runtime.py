import asyncio
import os
import signal

import pytest

from election.lease_manager import LeaderElector
from lifecycle.cancellation import CancellationSignal
from lifecycle.operator_runtime import OperatorRuntime
from lifecycle.shutdown_coordinator import ShutdownCoordinator
from models.enums import ElectionState, ExitCode
from models.errors import (
    ControlLoopFailedError,
    ControlLoopsExhaustedError,
    LeadershipLostError,
    StoppedBeforeLeadingError,
)
from models.lease import LeaseRecord, utc_now


class Loop:
    instances = []

    def __init__(self, context):
        self.context = context
        self.started = asyncio.Event()
        self.stopped = False
        self.running = False
        Loop.instances.append(self)

    async def run(self, workers, stop):
        self.started.set()
        await stop.wait()
        self.stopped = True


class BrokenLoop(Loop):
    async def run(self, workers, stop):
        self.started.set()
        await asyncio.sleep(0.02)
        raise RuntimeError("reconcile crashed")


@pytest.fixture(autouse=True)
def clear_instances():
    Loop.instances = []


@pytest.fixture
def exits():
    return []


@pytest.fixture
def make_runtime(operator_config, store, cluster_client, informers, registry, exits):
    def _make(**factories):
        for name, factory in (factories or {"cluster": Loop}).items():
            registry.register(name, factory)
        return OperatorRuntime(
            operator_config,
            store,
            cluster_client,
            informer_factory=informers,
            registry=registry,
            coordinator=ShutdownCoordinator(
                timeout_per_handler=0.5, total_timeout=2.0, force_exit=exits.append
            ),
            exit_process=exits.append,
        )
    return _make


@pytest.mark.asyncio
async def test_sigterm_while_leading_releases_lease_and_exits_fatal(make_runtime, store, wait_until):
    runtime = make_runtime()
    task = asyncio.create_task(runtime.run())

    await wait_until(lambda: runtime.elector.is_leader and Loop.instances)
    await asyncio.wait_for(Loop.instances[0].started.wait(), timeout=1.0)
    assert runtime.context.service_account == "operator-sa"
    assert runtime.controller_status() == {"cluster": "running"}

    os.kill(os.getpid(), signal.SIGTERM)
    code = await asyncio.wait_for(task, timeout=2.0)

    assert code is ExitCode.FATAL
    assert isinstance(runtime.cause, ControlLoopsExhaustedError)
    assert runtime.stop.reason == "SIGTERM"
    assert Loop.instances[0].stopped
    assert store.peek("test-lease").is_released
    assert runtime.elector.state is ElectionState.STOPPED


@pytest.mark.asyncio
async def test_leadership_loss_stops_loops(make_runtime, store, wait_until):
    runtime = make_runtime()
    task = asyncio.create_task(runtime.run())
    await wait_until(lambda: runtime.elector.is_leader and Loop.instances)

    store.set_available(False)
    code = await asyncio.wait_for(task, timeout=2.0)

    assert code is ExitCode.FATAL
    assert isinstance(runtime.cause, LeadershipLostError)
    assert runtime.stop.reason == "leadership lost"
    assert runtime.controller_status()["cluster"] in ("completed", "cancelled")


@pytest.mark.asyncio
async def test_stop_before_leading_never_builds_loops(make_runtime, store, wait_until):
    now = utc_now()
    await store.create("test-lease", LeaseRecord("operator-1", 60.0, now, now))

    runtime = make_runtime()
    task = asyncio.create_task(runtime.run())
    await wait_until(lambda: runtime.elector.observed_leader == "operator-1")
    assert runtime.status()["leader"] == "operator-1"
    assert runtime.controller_status() == {"cluster": "pending"}

    os.kill(os.getpid(), signal.SIGINT)
    code = await asyncio.wait_for(task, timeout=2.0)

    assert code is ExitCode.FATAL
    assert isinstance(runtime.cause, StoppedBeforeLeadingError)
    assert Loop.instances == []
    assert store.peek("test-lease").holder_identity == "operator-1"


@pytest.mark.asyncio
async def test_loop_failure_is_fatal_and_releases_lease(make_runtime, store):
    runtime = make_runtime(cluster=Loop, backup=BrokenLoop)
    code = await asyncio.wait_for(runtime.run(), timeout=2.0)

    assert code is ExitCode.FATAL
    assert isinstance(runtime.cause, ControlLoopFailedError)
    assert runtime.cause.name == "backup"
    assert all(loop.stopped for loop in Loop.instances if type(loop) is Loop)
    assert store.peek("test-lease").is_released


@pytest.mark.asyncio
async def test_missing_service_account_is_not_fatal(make_runtime, cluster_client, wait_until):
    cluster_client.accounts.clear()
    runtime = make_runtime()
    task = asyncio.create_task(runtime.run())

    await wait_until(lambda: runtime.elector.is_leader and Loop.instances)
    assert runtime.context.service_account == ""

    os.kill(os.getpid(), signal.SIGTERM)
    assert await asyncio.wait_for(task, timeout=2.0) is ExitCode.FATAL


@pytest.mark.asyncio
async def test_registry_is_frozen_once_running(make_runtime, registry, wait_until):
    runtime = make_runtime()
    task = asyncio.create_task(runtime.run())
    await wait_until(lambda: runtime.elector.is_leader)

    assert registry.frozen

    os.kill(os.getpid(), signal.SIGTERM)
    await asyncio.wait_for(task, timeout=2.0)


class SlowDrainLoop(Loop):
    """Honours stop but takes longer to wind down than the takeover margin."""

    async def run(self, workers, stop):
        self.running = True
        self.started.set()
        try:
            await stop.wait()
            await asyncio.sleep(0.15)
            self.stopped = True
        finally:
            self.running = False


class UncancellableLoop(Loop):
    """Swallows cancellation and keeps going for a while."""

    async def run(self, workers, stop):
        self.started.set()
        try:
            await asyncio.Event().wait()
        except asyncio.CancelledError:
            await asyncio.sleep(0.3)
        self.stopped = True


@pytest.fixture
def contender(store, election_config):
    """A second candidate on the shared store recording whether our loops were alive on takeover."""
    stop = CancellationSignal()
    elector = LeaderElector(store, election_config, identity="operator-1")
    overlaps = []

    def start():
        def on_acquired():
            overlaps.append([loop.running for loop in Loop.instances])

        return asyncio.create_task(
            elector.run(stop, on_acquired=on_acquired, on_lost=lambda: None)
        )

    return elector, stop, overlaps, start


@pytest.mark.asyncio
async def test_loops_gone_before_new_leader_after_partition(
    operator_config, store_view, cluster_client, informers, registry, exits, contender, wait_until
):
    view = store_view()
    registry.register("cluster", SlowDrainLoop)
    runtime = OperatorRuntime(
        operator_config, view, cluster_client,
        informer_factory=informers,
        registry=registry,
        coordinator=ShutdownCoordinator(timeout_per_handler=0.5, total_timeout=2.0, force_exit=exits.append),
        exit_process=exits.append,
    )
    task = asyncio.create_task(runtime.run())
    await wait_until(lambda: runtime.elector.is_leader and Loop.instances)
    await asyncio.wait_for(Loop.instances[0].started.wait(), timeout=1.0)

    elector, stop, overlaps, start = contender
    other = start()
    await wait_until(lambda: elector.observed_leader == "operator-0")

    view.partitioned = True
    code = await asyncio.wait_for(task, timeout=2.0)
    await wait_until(lambda: elector.is_leader)

    assert code is ExitCode.FATAL
    assert isinstance(runtime.cause, LeadershipLostError)
    assert overlaps == [[False]]
    assert not Loop.instances[0].stopped
    assert exits == []

    stop.fire("test finished")
    await asyncio.wait_for(other, timeout=1.0)


@pytest.mark.asyncio
async def test_lease_held_while_loops_drain_after_sigterm(make_runtime, store, contender, wait_until):
    runtime = make_runtime(cluster=SlowDrainLoop)
    task = asyncio.create_task(runtime.run())
    await wait_until(lambda: runtime.elector.is_leader and Loop.instances)
    await asyncio.wait_for(Loop.instances[0].started.wait(), timeout=1.0)

    elector, stop, overlaps, start = contender
    other = start()
    await wait_until(lambda: elector.observed_leader == "operator-0")

    os.kill(os.getpid(), signal.SIGTERM)
    code = await asyncio.wait_for(task, timeout=2.0)
    await wait_until(lambda: elector.is_leader)

    assert code is ExitCode.FATAL
    assert Loop.instances[0].stopped
    assert overlaps == [[False]]
    assert runtime.elector.state is ElectionState.STOPPED

    stop.fire("test finished")
    await asyncio.wait_for(other, timeout=1.0)


@pytest.mark.asyncio
async def test_loop_outliving_lease_forces_exit(make_runtime, store, exits, wait_until):
    runtime = make_runtime(cluster=UncancellableLoop)
    task = asyncio.create_task(runtime.run())
    await wait_until(lambda: runtime.elector.is_leader and Loop.instances)

    store.set_available(False)
    await wait_until(lambda: exits, timeout=1.0)
    assert exits == [int(ExitCode.FATAL)]

    code = await asyncio.wait_for(task, timeout=2.0)
    assert code is ExitCode.FATAL
    assert isinstance(runtime.cause, LeadershipLostError)
