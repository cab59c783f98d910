import asyncio

import pytest

from lifecycle.cancellation import CancellationSignal


@pytest.mark.asyncio
async def test_first_fire_wins_and_reason_is_kept():
    stop = CancellationSignal()
    assert not stop.fired
    assert stop.reason is None

    assert stop.fire("SIGTERM") is True
    assert stop.fire("leadership lost") is False

    assert stop.fired
    assert stop.reason == "SIGTERM"


@pytest.mark.asyncio
async def test_late_observer_sees_fired_signal_immediately():
    stop = CancellationSignal()
    stop.fire("SIGINT")

    await asyncio.wait_for(stop.wait(), timeout=0.1)
    assert await stop.wait_for(0) is True


@pytest.mark.asyncio
async def test_wait_for_times_out_while_pending():
    stop = CancellationSignal()
    assert await stop.wait_for(0.01) is False
    assert not stop.fired


@pytest.mark.asyncio
async def test_every_waiter_is_released():
    stop = CancellationSignal()
    waiters = [asyncio.create_task(stop.wait()) for _ in range(5)]
    await asyncio.sleep(0)
    assert not any(w.done() for w in waiters)

    stop.fire("shutdown")
    await asyncio.wait_for(asyncio.gather(*waiters), timeout=0.5)


def test_repr_shows_state():
    stop = CancellationSignal()
    assert "pending" in repr(stop)
    stop.fire("SIGTERM")
    assert "SIGTERM" in repr(stop)
