from .api_server_shutdown_handler import APIServerShutdownHandler
from .lease_release_handler import LeaseReleaseHandler
from .task_cancellation_handler import TaskCancellationHandler

__all__ = [
    "APIServerShutdownHandler",
    "LeaseReleaseHandler",
    "TaskCancellationHandler",
]
