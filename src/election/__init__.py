"""
Election subsystem
------------------

Leader election over a renewable lease:
    from election import LeaderElector, InMemoryLeaseStore
"""

from .lease_store import LeaseStore
from .memory_store import InMemoryLeaseStore
from .lease_manager import LeaderElector, default_identity

__all__ = [
    "LeaseStore",
    "InMemoryLeaseStore",
    "LeaderElector",
    "default_identity",
]
