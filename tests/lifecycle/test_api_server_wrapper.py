import pytest
import pytest_asyncio
import socket
import asyncio
from fastapi import FastAPI
from lifecycle.api_server_wrapper import APIServerWrapper
from lifecycle.handlers import APIServerShutdownHandler


def free_port():
    with socket.socket() as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest_asyncio.fixture
async def api_wrapper():
    app = FastAPI()
    wrapper = APIServerWrapper(app, host="127.0.0.1", port=free_port())
    yield wrapper
    await wrapper.stop()


@pytest.mark.asyncio
async def test_start_and_stop(api_wrapper):
    task = asyncio.create_task(api_wrapper.start())
    await asyncio.sleep(0.2)

    assert api_wrapper.server is not None
    assert api_wrapper.is_running

    await api_wrapper.stop()
    await asyncio.wait_for(task, timeout=2.0)
    assert not api_wrapper.is_running
    assert api_wrapper.server is None


@pytest.mark.asyncio
async def test_stop_without_start(api_wrapper):
    # Should not crash
    await api_wrapper.stop()


@pytest.mark.asyncio
async def test_stop_releases_port(api_wrapper):
    t = asyncio.create_task(api_wrapper.start())
    await asyncio.sleep(0.2)

    await api_wrapper.stop()
    await asyncio.wait_for(t, timeout=2.0)

    # port must be free now
    s = socket.socket()
    s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    s.bind(("127.0.0.1", api_wrapper.port))
    s.close()


@pytest.mark.asyncio
async def test_start_cancelled_externally(api_wrapper):
    t = asyncio.create_task(api_wrapper.start())
    await asyncio.sleep(0.05)

    t.cancel()
    with pytest.raises(asyncio.CancelledError):
        await t

    assert not api_wrapper.is_running


@pytest.mark.asyncio
async def test_shutdown_handler_stops_server(api_wrapper):
    t = asyncio.create_task(api_wrapper.start())
    await asyncio.sleep(0.2)

    handler = APIServerShutdownHandler(api_wrapper)
    assert handler.shutdown_priority == 90
    await handler.shutdown()

    await asyncio.wait_for(t, timeout=2.0)
    assert not api_wrapper.is_running

    # Nothing left to stop
    await handler.shutdown()
