"""
In-memory lease store.

Linearizable: every operation runs under one asyncio.Lock, so concurrent
candidates on the same event loop observe a single total order of writes.
Outages and latency can be injected to exercise the election's failure paths.
"""

from __future__ import annotations

import asyncio
from typing import Dict, Optional

from models.errors import (
    LeaseAlreadyExistsError,
    LeaseStoreUnavailableError,
    LeaseVersionConflictError,
)
from models.lease import LeaseRecord
from utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.LEASE)


class InMemoryLeaseStore:
    """
    Reference LeaseStore implementation.

    Example:
        store = InMemoryLeaseStore()
        created = await store.create("operator", record)
        renewed = await store.update_if_version_matches(
            "operator", record, expected_version=created.version
        )

        store.set_available(False)   # every call raises LeaseStoreUnavailableError
        store.set_latency(0.5)       # every call sleeps 0.5s before running
    """

    def __init__(self) -> None:
        self._records: Dict[str, LeaseRecord] = {}
        self._lock = asyncio.Lock()
        self._next_version = 1
        self._available = True
        self._latency = 0.0
        self.writes = 0

    # -----------------------------
    # Fault injection
    # -----------------------------
    def set_available(self, available: bool) -> None:
        self._available = available
        log.debug("Store availability changed", available=available)

    def set_latency(self, seconds: float) -> None:
        self._latency = max(seconds, 0.0)

    # -----------------------------
    # LeaseStore protocol
    # -----------------------------
    async def get(self, name: str) -> Optional[LeaseRecord]:
        await self._enter()
        async with self._lock:
            self._check_available()
            return self._records.get(name)

    async def create(self, name: str, record: LeaseRecord) -> LeaseRecord:
        await self._enter()
        async with self._lock:
            self._check_available()
            if name in self._records:
                raise LeaseAlreadyExistsError(name)
            return self._store(name, record)

    async def update_if_version_matches(
        self, name: str, record: LeaseRecord, expected_version: int
    ) -> LeaseRecord:
        await self._enter()
        async with self._lock:
            self._check_available()
            current = self._records.get(name)
            if current is None or current.version != expected_version:
                raise LeaseVersionConflictError(
                    name, expected_version, current.version if current else None
                )
            return self._store(name, record)

    # -----------------------------
    # Internal
    # -----------------------------
    async def _enter(self) -> None:
        if self._latency:
            await asyncio.sleep(self._latency)

    def _check_available(self) -> None:
        if not self._available:
            raise LeaseStoreUnavailableError("in-memory lease store is unavailable")

    def _store(self, name: str, record: LeaseRecord) -> LeaseRecord:
        stored = record.with_version(self._next_version)
        self._next_version += 1
        self._records[name] = stored
        self.writes += 1
        log.debug(
            "Lease written",
            name=name,
            holder=stored.holder_identity or "<released>",
            version=stored.version,
        )
        return stored

    def peek(self, name: str) -> Optional[LeaseRecord]:
        """Synchronous read for tests and the status API."""
        return self._records.get(name)
