import asyncio

import pytest

from controllers.cluster_controller import CLUSTER_KIND, ClusterController
from lifecycle.cancellation import CancellationSignal
from models.enums import ResourceAction
from services.notification_bus import ResourceEvent


def cluster_event(key, action=ResourceAction.ADDED):
    return ResourceEvent(CLUSTER_KIND, action, key, {"name": key})


class Recorder:
    def __init__(self, fail_on=None, delay=0.0):
        self.keys = []
        self.fail_on = fail_on
        self.delay = delay

    async def __call__(self, key):
        if self.delay:
            await asyncio.sleep(self.delay)
        if key == self.fail_on:
            raise RuntimeError("cannot reconcile")
        self.keys.append(key)


@pytest.mark.asyncio
async def test_subscribes_on_construction(context):
    ClusterController(context)
    assert context.informer_factory.informer_for(CLUSTER_KIND).handler_count == 1


@pytest.mark.asyncio
async def test_reconciles_events_delivered_after_start(context, wait_until):
    recorder = Recorder()
    controller = ClusterController(context, reconcile=recorder)
    stop = CancellationSignal()

    # Published before delivery starts: buffered, not lost
    context.informer_factory.publish(cluster_event("default/db1"))

    run = asyncio.create_task(controller.run(2, stop))
    context.informer_factory.start(stop)
    context.informer_factory.publish(cluster_event("default/db2"))

    await wait_until(lambda: len(recorder.keys) == 2, timeout=1.0)
    assert sorted(recorder.keys) == ["default/db1", "default/db2"]

    stop.fire("test done")
    await asyncio.wait_for(run, timeout=1.0)
    assert controller.processed == 2


@pytest.mark.asyncio
async def test_pending_keys_are_deduplicated(context):
    controller = ClusterController(context)
    controller.on_cluster_event(cluster_event("default/db1"))
    controller.on_cluster_event(cluster_event("default/db1", ResourceAction.MODIFIED))
    controller.on_cluster_event(cluster_event("default/db2"))

    assert controller._queue.qsize() == 2


@pytest.mark.asyncio
async def test_reconcile_error_does_not_stop_workers(context, wait_until):
    recorder = Recorder(fail_on="default/bad")
    controller = ClusterController(context, reconcile=recorder)
    stop = CancellationSignal()
    run = asyncio.create_task(controller.run(1, stop))

    controller.on_cluster_event(cluster_event("default/bad"))
    controller.on_cluster_event(cluster_event("default/good"))

    await wait_until(lambda: recorder.keys == ["default/good"], timeout=1.0)
    assert not run.done()

    stop.fire("test done")
    await asyncio.wait_for(run, timeout=1.0)


@pytest.mark.asyncio
async def test_stop_interrupts_in_flight_reconcile(context):
    controller = ClusterController(context, reconcile=Recorder(delay=10.0))
    stop = CancellationSignal()
    run = asyncio.create_task(controller.run(2, stop))
    controller.on_cluster_event(cluster_event("default/slow"))
    await asyncio.sleep(0.01)

    stop.fire("SIGTERM")
    await asyncio.wait_for(run, timeout=0.5)
