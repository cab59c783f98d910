import asyncio

import pytest

from lifecycle.cancellation import CancellationSignal
from models.enums import ResourceAction
from services.notification_bus import ResourceEvent, SharedInformerFactory


def event(key, kind="Cluster", action=ResourceAction.ADDED, obj=None):
    return ResourceEvent(kind, action, key, obj or {"name": key})


@pytest.fixture
def factory():
    return SharedInformerFactory("default")


@pytest.mark.asyncio
async def test_events_are_buffered_until_start(factory, wait_until):
    received = []
    factory.informer_for("Cluster").add_handler(lambda e: received.append(e.key))

    factory.publish(event("default/a"))
    factory.publish(event("default/b"))
    await asyncio.sleep(0.01)
    assert received == []
    assert factory.pending == 2
    assert not factory.started

    stop = CancellationSignal()
    task = factory.start(stop)
    await wait_until(lambda: len(received) == 2)
    assert received == ["default/a", "default/b"]
    assert factory.start(stop) is task

    stop.fire("test done")
    await asyncio.wait_for(task, timeout=0.5)


@pytest.mark.asyncio
async def test_handler_failure_does_not_stop_delivery(factory, wait_until):
    received = []

    def broken(e):
        raise RuntimeError("handler bug")

    async def healthy(e):
        received.append(e.key)

    informer = factory.informer_for("Cluster")
    informer.add_handler(broken, priority=10)
    informer.add_handler(healthy)

    stop = CancellationSignal()
    task = factory.start(stop)
    factory.publish(event("default/a"))
    factory.publish(event("default/b"))

    await wait_until(lambda: received == ["default/a", "default/b"])
    stop.fire("test done")
    await asyncio.wait_for(task, timeout=0.5)


@pytest.mark.asyncio
async def test_priority_and_filter(factory, wait_until):
    calls = []
    informer = factory.informer_for("Cluster")
    informer.add_handler(lambda e: calls.append("low"), priority=0)
    informer.add_handler(lambda e: calls.append("high"), priority=5)
    informer.add_handler(
        lambda e: calls.append("deleted-only"),
        filter_fn=lambda e: e.action is ResourceAction.DELETED,
    )

    await informer.dispatch(event("default/a"))
    assert calls == ["high", "low"]


@pytest.mark.asyncio
async def test_cache_follows_events(factory):
    informer = factory.informer_for("Cluster")
    await informer.dispatch(event("default/a", obj={"v": 1}))
    await informer.dispatch(event("default/a", action=ResourceAction.MODIFIED, obj={"v": 2}))
    await informer.dispatch(event("default/b"))
    await informer.dispatch(event("default/b", action=ResourceAction.DELETED))

    assert informer.cached() == {"default/a": {"v": 2}}


@pytest.mark.asyncio
async def test_events_without_informer_are_dropped(factory, wait_until):
    received = []
    factory.informer_for("Cluster").add_handler(lambda e: received.append(e.key))

    stop = CancellationSignal()
    task = factory.start(stop)
    factory.publish(event("default/x", kind="Backup"))
    factory.publish(event("default/y"))

    await wait_until(lambda: received == ["default/y"])
    assert factory.kinds() == ["Cluster"]

    stop.fire("test done")
    await asyncio.wait_for(task, timeout=0.5)


@pytest.mark.asyncio
async def test_resync_redelivers_cached_objects(wait_until):
    factory = SharedInformerFactory("default", resync_period=0.02)
    actions = []
    factory.informer_for("Cluster").add_handler(lambda e: actions.append(e.action))

    stop = CancellationSignal()
    task = factory.start(stop)
    factory.publish(event("default/a"))

    await wait_until(lambda: ResourceAction.MODIFIED in actions, timeout=1.0)
    assert actions[0] is ResourceAction.ADDED

    stop.fire("test done")
    await asyncio.wait_for(task, timeout=0.5)


@pytest.mark.asyncio
async def test_events_for_unknown_kinds_are_dropped(factory, wait_until):
    stop = CancellationSignal()
    task = factory.start(stop)
    factory.publish(event("default/a", kind="Backup"))

    await wait_until(lambda: factory.pending == 0)
    assert factory.kinds() == []

    stop.fire("test done")
    await asyncio.wait_for(task, timeout=0.5)
