"""
FastAPI Application Factory

Assembles the status API: health check plus the /system routes. Called from
main_asyncio.py (and from tests with a runtime stand-in).
"""

from datetime import datetime, timezone

from fastapi import FastAPI

from api.dependencies import peek_runtime
from api.routes import system
from api.schemas.status import HealthResponse
from lifecycle.task_registry import TaskRegistry
from utils.logger import get_logger
from models.enums import LogCategory

log = get_logger().for_category(LogCategory.API)


def create_app(
    title: str = "Operator Supervisor",
    description: str = "Status API of the leader-gated controller supervisor",
    version: str = "1.0.0",
    docs_enabled: bool = True,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        title: API title (shown in docs)
        description: API description
        version: API version
        docs_enabled: Enable /docs and /redoc

    Returns:
        Configured FastAPI application ready to run
    """
    app = FastAPI(
        title=title,
        description=description,
        version=version,
        docs_url="/docs" if docs_enabled else None,
        redoc_url="/redoc" if docs_enabled else None,
        openapi_url="/openapi.json" if docs_enabled else None
    )

    app.include_router(system.router)

    @app.get(
        "/healthz",
        response_model=HealthResponse,
        tags=["System"],
        summary="Health check",
    )
    async def health_check() -> HealthResponse:
        """Healthy while no tracked task has failed."""
        runtime = peek_runtime()
        failed = TaskRegistry.instance().failed()
        status, reason = "healthy", None

        if runtime is not None and runtime.stop is not None and runtime.stop.fired:
            status, reason = "stopping", runtime.stop.reason
        elif failed:
            status, reason = "degraded", f"{len(failed)} background task(s) have failed"

        return HealthResponse(
            status=status,
            reason=reason,
            timestamp=datetime.now(timezone.utc).isoformat(),
        )

    log.debug("Status API created", routes="/healthz, /system/*")
    return app
