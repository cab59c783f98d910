"""
Enums for the leader-gated controller supervisor
"""

from enum import Enum, IntEnum, auto


class ElectionState(Enum):
    """
    Leader election states

    CANDIDATE: Polling the lease, not holding it (also the terminal state after loss)
    LEADING: Holding the lease and renewing it
    STOPPED: Cancelled before ever leading, or after a clean step-down on cancel
    """
    CANDIDATE = auto()
    LEADING = auto()
    STOPPED = auto()


class ExitCode(IntEnum):
    """
    Process exit statuses

    No described termination path exits with 0: leadership loss, loop error,
    loop exhaustion and stop-before-leading all map to FATAL. A second
    termination signal maps to FORCE_QUIT.
    """
    FATAL = 1
    FORCE_QUIT = 2


class ResourceAction(Enum):
    """Change notification actions delivered by the informer factory"""
    ADDED = auto()
    MODIFIED = auto()
    DELETED = auto()


class LogLevel(Enum):
    """Log severity levels"""
    DEBUG = auto()
    INFO = auto()
    WARN = auto()
    ERROR = auto()


class LogCategory(Enum):
    """Log categories for grouping related events"""
    CONFIG = auto()      # Configuration loading, validation
    ELECTION = auto()    # Lease acquisition, renewal, loss
    LEASE = auto()       # Lease store operations
    SUPERVISOR = auto()  # Control loop orchestration
    CONTROLLER = auto()  # Individual control loops
    INFORMER = auto()    # Change notification delivery
    SYSTEM = auto()      # Startup, fatal exits

    API = auto()

    SHUTDOWN = auto()
    LIFECYCLE = auto()
    TASK = auto()

    GENERAL = auto()    # Default general category
