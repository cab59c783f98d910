"""
Lease record - the leader election record kept in the lease store
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class LeaseRecord:
    """
    Identifies the elected leader.

    `version` is the fencing token. It is assigned by the store on every
    successful write; the value a candidate puts in a record it submits is
    ignored. Candidates compare-and-swap against the version they observed.

    An empty `holder_identity` marks a released lease that anyone may claim.
    """
    holder_identity: str
    lease_duration_seconds: float
    acquire_time: datetime
    renew_time: datetime
    leader_transitions: int = 0
    version: int = 0

    @property
    def is_released(self) -> bool:
        return not self.holder_identity

    def with_version(self, version: int) -> "LeaseRecord":
        return replace(self, version=version)

    def same_claim(self, other: "LeaseRecord") -> bool:
        """True when both records describe the same write (holder and version)."""
        return (
            self.holder_identity == other.holder_identity
            and self.version == other.version
        )
