"""
Task Registry
-------------

Centralized tracking of asyncio tasks created by the supervisor core
(control loops, lease manager, signal reception, status API).

Features:
- Register tasks with metadata (category, description, origin)
- Track completion state, cancellation, errors
- Introspection API for the status endpoints
- Straggler lookup for the shutdown path
"""

from __future__ import annotations

import asyncio
import traceback
from dataclasses import dataclass
from enum import Enum, auto
from typing import Dict, Optional, List, Any
from datetime import datetime, timezone

from utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.TASK)


# ---------------------------------------------------------------------------
# TASK CATEGORY ENUM
# ---------------------------------------------------------------------------

class TaskCategory(Enum):
    """Logical grouping of asynchronous tasks."""
    ELECTION = auto()
    CONTROLLER = auto()
    INFORMER = auto()
    SUPERVISOR = auto()
    SIGNAL = auto()
    API = auto()
    GENERAL = auto()


# ---------------------------------------------------------------------------
# TASK METADATA
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TaskInfo:
    """Immutable metadata captured at task creation time."""
    id: int
    category: TaskCategory
    description: str
    created_at: str  # ISO UTC string
    created_timestamp: float
    origin_stack: str  # short stack trace where create_tracked_task was called
    created_by: Optional[str] = None


@dataclass
class TaskRecord:
    """Internal structure tracking task state."""
    task: asyncio.Task
    info: TaskInfo
    cancelled: bool = False
    finished_with_error: Optional[BaseException] = None
    finished_return: Optional[Any] = None
    finished_at: Optional[str] = None

    @property
    def status(self) -> str:
        if not self.task.done():
            return "running"
        if self.cancelled:
            return "cancelled"
        if self.finished_with_error is not None:
            return "failed"
        return "completed"


# ---------------------------------------------------------------------------
# TASK REGISTRY SINGLETON
# ---------------------------------------------------------------------------

class TaskRegistry:
    """
    Global registry for the process's long-running asyncio tasks.

    Responsibilities:
    - Track tasks and metadata
    - Record task failures (the owner decides what a failure means)
    - Provide debugging API
    - Expose stragglers to the shutdown path
    """

    _instance: Optional["TaskRegistry"] = None

    def __init__(self) -> None:
        self._records: Dict[int, TaskRecord] = {}
        self._by_task: Dict[asyncio.Task, int] = {}
        self._next_id: int = 1

    # -----------------------------
    # Singleton accessor
    # -----------------------------
    @classmethod
    def instance(cls) -> "TaskRegistry":
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Drop the singleton (tests start every case with a clean registry)."""
        cls._instance = None

    # -----------------------------
    # Register new task
    # -----------------------------
    def register(
        self,
        task: asyncio.Task,
        category: TaskCategory,
        description: str,
        created_by: Optional[str] = None
    ) -> int:
        """Register a new task with metadata."""
        task_id = self._next_id
        self._next_id += 1

        # Drop the last frame which will be inside this module
        stack_lines = traceback.format_stack(limit=8)
        origin_stack = "".join(stack_lines[:-1])

        now = datetime.now(timezone.utc)

        info = TaskInfo(
            id=task_id,
            category=category,
            description=description,
            created_at=now.isoformat(),
            created_timestamp=now.timestamp(),
            origin_stack=origin_stack,
            created_by=created_by,
        )

        self._records[task_id] = TaskRecord(task=task, info=info)
        self._by_task[task] = task_id

        log.debug(f"[Task {task_id}] Registered ({category.name}) - {description}")

        task.add_done_callback(self._on_task_done)
        return task_id

    # -----------------------------
    # Internal completion handler
    # -----------------------------
    def _on_task_done(self, task: asyncio.Task) -> None:
        """Internal callback whenever a task finishes."""
        record = self.get_record(task)
        if record is None:
            return

        record.finished_at = datetime.now(timezone.utc).isoformat()
        if task.cancelled():
            record.cancelled = True
            log.debug(f"[Task {record.info.id}] Cancelled - {record.info.description}")
            return

        exc = task.exception()
        if exc is not None:
            record.finished_with_error = exc
            log.debug(
                f"[Task {record.info.id}] Failed - {record.info.description}",
                error=f"{type(exc).__name__}: {exc}",
            )
        else:
            record.finished_return = task.result()
            log.debug(f"[Task {record.info.id}] Completed - {record.info.description}")

    # -----------------------------
    # Public API
    # -----------------------------
    def get_record(self, task: asyncio.Task) -> Optional[TaskRecord]:
        task_id = self._by_task.get(task)
        return self._records.get(task_id) if task_id is not None else None

    def list_all(self) -> List[TaskRecord]:
        """Return a list of all tracked task records."""
        return list(self._records.values())

    def active(self, category: Optional[TaskCategory] = None) -> List[TaskRecord]:
        """Return only tasks that are still running."""
        return [
            r for r in self._records.values()
            if not r.task.done() and (category is None or r.info.category is category)
        ]

    def failed(self) -> List[TaskRecord]:
        """Return tasks that ended with an exception."""
        return [r for r in self._records.values() if r.finished_with_error is not None]

    def cancelled(self) -> List[TaskRecord]:
        """Return cancelled tasks."""
        return [r for r in self._records.values() if r.cancelled]

    def summary(self) -> str:
        """Return human-readable summary for logs."""
        return (
            f"Tasks: total={len(self._records)}, running={len(self.active())}, "
            f"failed={len(self.failed())}, cancelled={len(self.cancelled())}"
        )

    # -----------------------------
    # Shutdown helpers
    # -----------------------------
    def get_tasks_for_shutdown(
        self,
        exclude: Optional[List[asyncio.Task]] = None
    ) -> List[asyncio.Task]:
        """Return all still-running tracked tasks except the excluded ones."""
        exclude = exclude or []
        tasks = [
            r.task for r in self._records.values()
            if not r.task.done() and r.task not in exclude
        ]
        log.debug(f"Shutdown: {len(tasks)} tasks still running")
        return tasks


# ---------------------------------------------------------------------------
# Convenience wrapper function
# ---------------------------------------------------------------------------

def create_tracked_task(
    coro,
    *,
    category: TaskCategory,
    description: str,
    created_by: Optional[str] = None,
) -> asyncio.Task:
    """
    Create and register a task in a single call.
    """
    task = asyncio.get_running_loop().create_task(coro, name=description)

    TaskRegistry.instance().register(
        task=task,
        category=category,
        description=description,
        created_by=created_by,
    )
    return task
