import asyncio

import pytest

from controllers.context import ControllerContext
from controllers.registry import ControllerRegistry
from election.memory_store import InMemoryLeaseStore
from lifecycle import shutdown_coordinator
from lifecycle.task_registry import TaskRegistry
from models.config import LeaderElectionConfig, OperatorConfig
from models.errors import LeaseStoreUnavailableError
from services.notification_bus import SharedInformerFactory


class FakeClusterClient:
    """Answers service account lookups from a dict; unknown pods raise LookupError."""

    def __init__(self, accounts=None):
        self.accounts = dict(accounts or {})
        self.calls = []

    async def get_pod_service_account(self, namespace, pod_name):
        self.calls.append((namespace, pod_name))
        key = f"{namespace}/{pod_name}"
        if key not in self.accounts:
            raise LookupError(f"pod {key} not found")
        return self.accounts[key]


class PartitionableStore:
    """One candidate's view of the shared store; can be cut off."""

    def __init__(self, store):
        self.store = store
        self.partitioned = False

    def _check(self):
        if self.partitioned:
            raise LeaseStoreUnavailableError("partitioned")

    async def get(self, name):
        self._check()
        return await self.store.get(name)

    async def create(self, name, record):
        self._check()
        return await self.store.create(name, record)

    async def update_if_version_matches(self, name, record, expected_version):
        self._check()
        return await self.store.update_if_version_matches(name, record, expected_version)


@pytest.fixture(autouse=True)
def clean_process_state(monkeypatch):
    """Every test starts with an empty task registry and no signal handler installed."""
    TaskRegistry.reset()
    monkeypatch.setattr(shutdown_coordinator, "_signal_handler_installed", False)
    yield
    TaskRegistry.reset()


@pytest.fixture
def election_config():
    """Production timings scaled down 1:100, jitter off for deterministic bounds."""
    return LeaderElectionConfig(
        lease_name="test-lease",
        lease_duration=0.15,
        renew_deadline=0.10,
        retry_period=0.02,
        jitter_factor=0.0,
    )


@pytest.fixture
def operator_config(election_config):
    return OperatorConfig(
        namespace="default",
        pod_name="operator-0",
        identity="operator-0",
        informers_resync=0,
        workers_per_controller=2,
        shutdown_grace_period=0.2,
        leader_election=election_config,
    )


@pytest.fixture
def store():
    return InMemoryLeaseStore()


@pytest.fixture
def store_view(store):
    """Factory of partitionable views onto the shared store."""
    return lambda: PartitionableStore(store)


@pytest.fixture
def cluster_client():
    return FakeClusterClient({"default/operator-0": "operator-sa"})


@pytest.fixture
def informers():
    return SharedInformerFactory("default")


@pytest.fixture
def context(cluster_client, informers):
    return ControllerContext(
        namespace="default",
        service_account="operator-sa",
        cluster_client=cluster_client,
        informer_factory=informers,
    )


@pytest.fixture
def registry():
    return ControllerRegistry()


@pytest.fixture
def wait_until():
    """Poll `predicate` every few milliseconds; fail the test after `timeout`."""

    async def _wait_until(predicate, timeout=2.0, interval=0.005):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError(f"condition not met within {timeout}s")
            await asyncio.sleep(interval)

    return _wait_until
