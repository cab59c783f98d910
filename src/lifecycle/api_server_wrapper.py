from __future__ import annotations
import asyncio
import contextlib
import uvicorn
from fastapi import FastAPI
from typing import Optional
from utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.API)


class APIServerWrapper:
    """
    Runs the status API (uvicorn) inside a tracked asyncio task without
    uvicorn installing its own signal handlers. SIGINT/SIGTERM belong to the
    ShutdownCoordinator alone.

    Behaviour:
      - start() launches uvicorn.Server.serve() in the background and blocks
        until stop() is called.
      - stop() unblocks start(), shuts the server down (forcing exit after a
        timeout) and cancels the serve task if it is still alive.
    """

    def __init__(
        self,
        app: FastAPI,
        host: str = "0.0.0.0",
        port: int = 8080,
    ):
        self.app = app
        self.host = host
        self.port = port
        self._server: Optional[uvicorn.Server] = None
        self._serve_task: Optional[asyncio.Task] = None
        self._stop_event: asyncio.Event = asyncio.Event()

    def _create_server(self) -> uvicorn.Server:
        config = uvicorn.Config(
            app=self.app,
            host=self.host,
            port=self.port,
            loop="asyncio",
            log_level="warning",
            access_log=False,
            server_header=False,
        )
        server = uvicorn.Server(config)

        # Signals are owned by the shutdown coordinator (older and newer uvicorn hooks)
        server.install_signal_handlers = lambda: None  # type: ignore
        server.capture_signals = contextlib.nullcontext  # type: ignore

        return server

    async def start(self, *, wait_started_timeout: float = 5.0) -> None:
        """
        Start uvicorn in the background and wait until stop() is called.

        Schedule with create_tracked_task() for a non-blocking start.
        """
        if self.is_running:
            raise RuntimeError("API server already started")

        self._server = self._create_server()
        self._stop_event.clear()

        log.info(f"🌐 Launching status API on http://{self.host}:{self.port}")
        self._serve_task = asyncio.create_task(self._server.serve(), name="UvicornServe")

        try:
            await self._wait_started(wait_started_timeout)
            await self._stop_event.wait()
        except asyncio.CancelledError:
            log.debug("start() cancelled externally, invoking stop()")
            await self.stop()
            raise

    async def _wait_started(self, timeout: float) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while loop.time() < deadline and not self._serve_task.done():
            if getattr(self._server, "started", False):
                log.info("🌐 Status API started")
                break
            await asyncio.sleep(0.05)

        if self._serve_task.done() and not self._serve_task.cancelled():
            exc = self._serve_task.exception()
            if exc is not None:
                log.error(f"Status API failed to start: {exc}")
                self._server = None
                raise exc

    async def stop(self, *, shutdown_timeout: float = 2.0) -> None:
        """Stop the server and release the port."""
        self._stop_event.set()

        if self._server is None:
            log.debug("Status API stop() called but server was not running")
            return

        log.info("🌐 Stopping status API...")
        self._server.should_exit = True
        try:
            await asyncio.wait_for(asyncio.shield(self._serve_task), timeout=shutdown_timeout)
        except asyncio.TimeoutError:
            log.warn("🌐 Status API shutdown timeout; forcing exit")
            self._server.force_exit = True
        except Exception as e:
            log.error(f"Status API exited with error: {e}", exc_info=True)

        if self._serve_task and not self._serve_task.done():
            self._serve_task.cancel()
            await asyncio.gather(self._serve_task, return_exceptions=True)

        self._server = None
        self._serve_task = None
        log.info("🌐 Status API stopped")

    @property
    def is_running(self) -> bool:
        return self._serve_task is not None and not self._serve_task.done()

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._serve_task

    @property
    def server(self) -> Optional[uvicorn.Server]:
        return self._server
