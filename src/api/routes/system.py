"""
System endpoints - leader election, control loops and task introspection
"""

from fastapi import APIRouter, Depends

from api.dependencies import get_runtime
from api.schemas.status import (
    ControllersResponse,
    LeaderResponse,
    TaskListResponse,
    TaskResponse,
    TaskSummaryResponse,
)
from lifecycle.task_registry import TaskRegistry
from utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.API)

router = APIRouter(prefix="/system", tags=["System"])


@router.get("/leader", response_model=LeaderResponse)
async def get_leader(runtime=Depends(get_runtime)) -> LeaderResponse:
    """Election state of this instance and the last observed leader."""
    return LeaderResponse(**runtime.status())


@router.get("/controllers", response_model=ControllersResponse)
async def get_controllers(runtime=Depends(get_runtime)) -> ControllersResponse:
    """
    Registered control loops.

    Loops are "pending" until this instance leads and the supervisor starts them.
    """
    controllers = runtime.controller_status()
    return ControllersResponse(count=len(controllers), controllers=controllers)


@router.get("/tasks/summary", response_model=TaskSummaryResponse)
async def get_task_summary() -> TaskSummaryResponse:
    registry = TaskRegistry.instance()
    return TaskSummaryResponse(
        summary=registry.summary(),
        total=len(registry.list_all()),
        active=len(registry.active()),
        failed=len(registry.failed()),
        cancelled=len(registry.cancelled()),
    )


@router.get("/tasks", response_model=TaskListResponse)
async def get_all_tasks() -> TaskListResponse:
    """Every tracked task: control loops, lease manager, informer delivery, API."""
    records = TaskRegistry.instance().list_all()

    tasks = [
        TaskResponse(
            id=r.info.id,
            category=r.info.category.name,
            description=r.info.description,
            created_at=r.info.created_at,
            created_by=r.info.created_by,
            status=r.status,
            error=str(r.finished_with_error) if r.finished_with_error else None,
        )
        for r in records
    ]
    return TaskListResponse(count=len(tasks), tasks=tasks)
