"""
Error taxonomy

Programming errors (duplicate registration, second signal handler, bad
configuration) fail at startup. Lease store errors are transient or
authoritative depending on where they surface. Fatal errors terminate the
process so an external restart policy can re-enter candidacy from scratch.
"""

from __future__ import annotations

from typing import Optional


class OperatorError(Exception):
    """Base class for every error raised by the supervisor core."""


# ---------------------------------------------------------------------------
# PROGRAMMING ERRORS
# ---------------------------------------------------------------------------

class ProgrammingError(OperatorError):
    """Misuse detected at startup. Never recovered."""


class DuplicateControllerError(ProgrammingError):
    def __init__(self, name: str):
        super().__init__(f"controller {name!r} is already registered")
        self.name = name


class RegistryFrozenError(ProgrammingError):
    def __init__(self, name: str):
        super().__init__(
            f"cannot register controller {name!r}: registry was already read"
        )
        self.name = name


class SignalHandlerAlreadyInstalledError(ProgrammingError):
    def __init__(self) -> None:
        super().__init__("signal handler may only be installed once per process")


class ConfigValidationError(ProgrammingError):
    """Raised when the operator configuration is inconsistent."""


# ---------------------------------------------------------------------------
# LEASE STORE ERRORS
# ---------------------------------------------------------------------------

class LeaseStoreError(OperatorError):
    """Base class for lease store adapter failures."""


class LeaseStoreUnavailableError(LeaseStoreError):
    """The store could not be reached. Transient while candidate."""


class LeaseAlreadyExistsError(LeaseStoreError):
    def __init__(self, name: str):
        super().__init__(f"lease {name!r} already exists")
        self.name = name


class LeaseVersionConflictError(LeaseStoreError):
    def __init__(self, name: str, expected: int, actual: Optional[int]):
        super().__init__(
            f"lease {name!r} version mismatch: expected {expected}, found {actual}"
        )
        self.name = name
        self.expected = expected
        self.actual = actual


# ---------------------------------------------------------------------------
# FATAL SUPERVISION ERRORS
# ---------------------------------------------------------------------------

class FatalError(OperatorError):
    """Terminates the process. The runtime logs it and exits non-zero."""


class LeadershipLostError(FatalError):
    def __init__(self, identity: str):
        super().__init__(f"leader election lost by {identity!r}")
        self.identity = identity


class StoppedBeforeLeadingError(FatalError):
    def __init__(self, reason: Optional[str]):
        super().__init__(f"stopped before acquiring leadership ({reason or 'unknown'})")
        self.reason = reason


class ControlLoopFailedError(FatalError):
    def __init__(self, name: str, cause: BaseException):
        super().__init__(f"error running {name} controller: {cause}")
        self.name = name
        self.cause = cause


class ControlLoopsExhaustedError(FatalError):
    def __init__(self, reason: Optional[str] = None):
        message = "Control loops exited"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.reason = reason
