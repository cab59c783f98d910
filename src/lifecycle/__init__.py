"""
Lifecycle subsystem
-------------------

Exports the public API for:
- cancellation & graceful shutdown
- task tracking & introspection
- shutdown handlers

The supervisor and the operator runtime depend on the controllers package
and are imported from their modules directly:
    from lifecycle import ShutdownCoordinator, CancellationSignal
    from lifecycle.supervisor import Supervisor
    from lifecycle.operator_runtime import OperatorRuntime
"""

from .cancellation import CancellationSignal
from .shutdown_coordinator import ShutdownCoordinator
from .task_registry import TaskRegistry, TaskCategory, TaskInfo, create_tracked_task
from .shutdown_protocol import IShutdownHandler
from . import handlers

__all__ = [
    "CancellationSignal",
    "ShutdownCoordinator",
    "TaskRegistry",
    "TaskCategory",
    "TaskInfo",
    "create_tracked_task",
    "IShutdownHandler",
    "handlers",
]
