"""
API Dependencies - runtime access for FastAPI endpoints

Pattern:
1. main_asyncio.py creates the OperatorRuntime
2. main_asyncio.py calls set_runtime() before starting the API server
3. Endpoints use get_runtime() via Depends()

Example:
    @router.get("/leader")
    async def leader(runtime = Depends(get_runtime)):
        return runtime.status()
"""

from typing import Optional, TYPE_CHECKING
from fastapi import HTTPException, status

if TYPE_CHECKING:
    from lifecycle.operator_runtime import OperatorRuntime


# Set by main_asyncio.py during initialization
_runtime: Optional["OperatorRuntime"] = None


def set_runtime(runtime: Optional["OperatorRuntime"]) -> None:
    """Store the runtime for API access (None clears it)."""
    global _runtime
    _runtime = runtime


async def get_runtime() -> "OperatorRuntime":
    """
    FastAPI dependency for accessing the operator runtime.

    Raises:
        HTTPException: 503 Service Unavailable if the runtime is not set yet
    """
    if _runtime is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Operator runtime not initialized"
        )
    return _runtime


def peek_runtime() -> Optional["OperatorRuntime"]:
    """The runtime if set, without failing (health checks)."""
    return _runtime
