"""
Lease store adapter protocol.

The election only needs a compare-and-swap capable record store with three
operations on a single named record. Backends live outside this package;
InMemoryLeaseStore is the linearizable reference used by tests.
"""

from typing import Optional, Protocol

from models.lease import LeaseRecord


class LeaseStore(Protocol):
    """
    Protocol for lease store backends.

    Every successful write returns the stored record carrying the new
    version (fencing token) assigned by the store.

    Errors:
        LeaseStoreUnavailableError: store could not be reached
        LeaseAlreadyExistsError: create() on an existing record
        LeaseVersionConflictError: update on a stale version or missing record
    """

    async def get(self, name: str) -> Optional[LeaseRecord]:
        """Return the current record, or None if it does not exist."""
        ...

    async def create(self, name: str, record: LeaseRecord) -> LeaseRecord:
        """Create the record. Fails if it already exists."""
        ...

    async def update_if_version_matches(
        self, name: str, record: LeaseRecord, expected_version: int
    ) -> LeaseRecord:
        """Replace the record only if its current version equals expected_version."""
        ...
