"""
Lease Manager - leader election over a renewable lease.

Runs the CANDIDATE → LEADING state machine against a LeaseStore:

- Acquire: create the record if absent, or compare-and-swap it once the
  current holder has let it go stale for a full lease duration.
- Renew: while leading, rewrite the record every retry period. Failed
  attempts are retried until renew_deadline has passed since the last
  successful renewal; past that point leadership is lost.
- Loss is terminal for this elector: on_lost fires once and run() returns.
  Re-entering candidacy is left to a process restart.

Staleness is judged on the local monotonic clock, starting from the moment
this candidate observed the record change. The holder's wall-clock
timestamps are never compared against ours.
"""

from __future__ import annotations

import asyncio
import random
import socket
import time
from typing import Awaitable, Callable, Optional, TypeVar

from lifecycle.cancellation import CancellationSignal
from election.lease_store import LeaseStore
from models.config import LeaderElectionConfig
from models.enums import ElectionState
from models.errors import (
    LeaseAlreadyExistsError,
    LeaseStoreError,
    LeaseVersionConflictError,
)
from models.lease import LeaseRecord, utc_now
from utils.logger import get_logger, LogCategory

log = get_logger().for_category(LogCategory.ELECTION)

T = TypeVar("T")

# Duration written into a released record so candidates can claim it quickly
RELEASED_LEASE_DURATION = 1.0


def default_identity() -> str:
    """Stable identity for this process instance (pod host name)."""
    return socket.gethostname()


class _StopRequested(Exception):
    """Internal: the cancellation signal fired during a store round-trip."""


class LeaderElector:
    """
    Leader election state machine for one candidate.

    Example usage:
        elector = LeaderElector(store, config.leader_election, identity="operator-0")

        state = await elector.run(
            stop,
            on_acquired=lambda: leading.set(),
            on_lost=lambda: stop.fire("leadership lost"),
        )
    """

    def __init__(
        self,
        store: LeaseStore,
        config: LeaderElectionConfig,
        identity: Optional[str] = None,
        clock: Callable[[], float] = time.monotonic,
        rng: Optional[random.Random] = None,
    ):
        config.validate()
        self._store = store
        self._config = config
        self._identity = identity or default_identity()
        self._clock = clock
        self._rng = rng or random.Random()

        self._state = ElectionState.CANDIDATE
        self._observed_record: Optional[LeaseRecord] = None
        self._observed_time: float = 0.0
        self._last_renew: float = 0.0
        self._lease_anchor: Optional[float] = None
        self._reported_leader: Optional[str] = None
        self._on_new_leader: Optional[Callable[[str], None]] = None

    # =========================================================================
    # Introspection
    # =========================================================================

    @property
    def identity(self) -> str:
        return self._identity

    @property
    def lease_name(self) -> str:
        return self._config.lease_name

    @property
    def state(self) -> ElectionState:
        return self._state

    @property
    def is_leader(self) -> bool:
        return self._state is ElectionState.LEADING

    def lease_expires_in(self) -> float:
        """
        Seconds until another candidate may take over the lease this instance
        last wrote. Counted from the start of the successful write, so it never
        overestimates the time left. Zero when nothing is held.
        """
        if self._lease_anchor is None:
            return 0.0
        return max(0.0, self._lease_anchor + self._config.lease_duration - self._clock())

    @property
    def observed_record(self) -> Optional[LeaseRecord]:
        return self._observed_record

    @property
    def observed_leader(self) -> Optional[str]:
        record = self._observed_record
        if record is None or record.is_released:
            return None
        return record.holder_identity

    # =========================================================================
    # Main loop
    # =========================================================================

    async def run(
        self,
        stop: CancellationSignal,
        on_acquired: Callable[[], None],
        on_lost: Callable[[], None],
        on_new_leader: Optional[Callable[[str], None]] = None,
    ) -> ElectionState:
        """
        Run the election until leadership is lost or `stop` fires.

        on_acquired runs exactly once, synchronously, before renewal starts.
        on_lost runs exactly once if leadership is lost while leading; it is
        not called when `stop` fires, in which case the lease is released
        (if release_on_cancel is set) and STOPPED is returned.

        Returns:
            STOPPED if cancelled, CANDIDATE after leadership was lost
        """
        self._on_new_leader = on_new_leader
        log.info(
            "Starting leader election",
            identity=self._identity,
            lease=self._config.lease_name,
        )

        if not await self._acquire(stop):
            self._state = ElectionState.STOPPED
            log.info("Leader election stopped before acquiring lease", reason=stop.reason)
            return self._state

        self._state = ElectionState.LEADING
        log.info("Successfully acquired lease", identity=self._identity, lease=self._config.lease_name)
        on_acquired()

        lost = await self._renew_loop(stop)
        if lost:
            self._state = ElectionState.CANDIDATE
            log.error("Leader election lost", identity=self._identity, lease=self._config.lease_name)
            on_lost()
            return self._state

        if self._config.release_on_cancel:
            await self._release()
        self._state = ElectionState.STOPPED
        log.info("Stopped leading", reason=stop.reason)
        return self._state

    # =========================================================================
    # Candidate
    # =========================================================================

    async def _acquire(self, stop: CancellationSignal) -> bool:
        """Poll the lease until acquired (True) or stop fires (False)."""
        while not stop.fired:
            started = self._clock()
            try:
                acquired = await self._guarded(
                    self._try_acquire_or_renew(renewing=False),
                    timeout=self._config.renew_deadline,
                    stop=stop,
                )
            except _StopRequested:
                return False
            except asyncio.TimeoutError:
                log.warn("Lease store call timed out while acquiring", lease=self._config.lease_name)
                acquired = False
            except LeaseVersionConflictError as e:
                log.debug("Lost acquisition race", lease=self._config.lease_name, error=str(e))
                acquired = False
            except LeaseStoreError as e:
                log.warn("Error retrieving lease, retrying", lease=self._config.lease_name, error=str(e))
                acquired = False

            if acquired:
                self._lease_anchor = started
                return True

            if await stop.wait_for(self._candidate_delay()):
                return False
        return False

    def _candidate_delay(self) -> float:
        """Jittered retry period, cut short when the observed lease expires sooner."""
        period = self._config.retry_period
        delay = period + self._rng.uniform(0, self._config.jitter_factor * period)

        record = self._observed_record
        if (
            record is not None
            and not record.is_released
            and record.holder_identity != self._identity
        ):
            until_expiry = self._observed_time + record.lease_duration_seconds - self._clock()
            if until_expiry >= 0:
                delay = min(delay, until_expiry)
        return delay

    # =========================================================================
    # Leader
    # =========================================================================

    async def _renew_loop(self, stop: CancellationSignal) -> bool:
        """
        Keep renewing the lease.

        Returns:
            True if leadership was lost, False if `stop` fired
        """
        self._last_renew = self._clock()
        while True:
            if await stop.wait_for(self._config.retry_period):
                return False

            while True:
                remaining = self._last_renew + self._config.renew_deadline - self._clock()
                if remaining <= 0:
                    log.error(
                        "Failed to renew lease before deadline",
                        renew_deadline=f"{self._config.renew_deadline}s",
                    )
                    return True

                started = self._clock()
                try:
                    renewed = await self._guarded(
                        self._try_acquire_or_renew(renewing=True),
                        timeout=remaining,
                        stop=stop,
                    )
                except _StopRequested:
                    return False
                except asyncio.TimeoutError:
                    log.warn("Lease renewal timed out", lease=self._config.lease_name)
                    continue
                except LeaseVersionConflictError as e:
                    log.error("Lease was updated by another candidate", error=str(e))
                    self._lease_anchor = None
                    return True
                except LeaseStoreError as e:
                    log.warn("Lease renewal failed, retrying", error=str(e))
                    remaining = self._last_renew + self._config.renew_deadline - self._clock()
                    if await stop.wait_for(min(self._config.retry_period, max(remaining, 0.0))):
                        return False
                    continue

                if not renewed:
                    log.error("Lease is held by another candidate", holder=self.observed_leader)
                    self._lease_anchor = None
                    return True

                self._last_renew = self._clock()
                self._lease_anchor = started
                log.debug("Renewed lease", version=self._observed_record.version)
                break

    async def _release(self) -> None:
        """Hand the lease back so another candidate can take over without waiting."""
        record = self._observed_record
        if record is None or record.holder_identity != self._identity:
            return

        now = utc_now()
        released = LeaseRecord(
            holder_identity="",
            lease_duration_seconds=RELEASED_LEASE_DURATION,
            acquire_time=now,
            renew_time=now,
            leader_transitions=record.leader_transitions,
        )
        try:
            stored = await asyncio.wait_for(
                self._store.update_if_version_matches(
                    self._config.lease_name, released, record.version
                ),
                timeout=self._config.renew_deadline,
            )
        except (LeaseStoreError, asyncio.TimeoutError) as e:
            log.warn("Failed to release lease", lease=self._config.lease_name, error=str(e))
            return

        self._observe(stored)
        self._lease_anchor = None
        log.info("Released lease", lease=self._config.lease_name)

    # =========================================================================
    # Store round-trip
    # =========================================================================

    async def _try_acquire_or_renew(self, renewing: bool) -> bool:
        """
        One acquire/renew attempt.

        Returns:
            True if this candidate holds the lease after the attempt
        """
        name = self._config.lease_name
        now = utc_now()

        current = await self._store.get(name)
        if current is None:
            if renewing:
                log.error("Lease record disappeared while leading", lease=name)
                return False
            fresh = LeaseRecord(
                holder_identity=self._identity,
                lease_duration_seconds=self._config.lease_duration,
                acquire_time=now,
                renew_time=now,
            )
            try:
                stored = await self._store.create(name, fresh)
            except LeaseAlreadyExistsError:
                log.debug("Lease was created by another candidate", lease=name)
                return False
            self._observe(stored)
            return True

        if self._observed_record is None or not current.same_claim(self._observed_record):
            self._observe(current)

        held_by_us = current.holder_identity == self._identity
        if renewing and not held_by_us:
            return False

        if not held_by_us and not current.is_released:
            expires = self._observed_time + current.lease_duration_seconds
            if expires > self._clock():
                return False

        claim = LeaseRecord(
            holder_identity=self._identity,
            lease_duration_seconds=self._config.lease_duration,
            acquire_time=current.acquire_time if held_by_us else now,
            renew_time=now,
            leader_transitions=current.leader_transitions + (0 if held_by_us else 1),
        )
        stored = await self._store.update_if_version_matches(name, claim, current.version)
        self._observe(stored)
        return True

    def _observe(self, record: LeaseRecord) -> None:
        self._observed_record = record
        self._observed_time = self._clock()

        holder = record.holder_identity
        if holder and holder != self._reported_leader:
            self._reported_leader = holder
            if holder != self._identity:
                log.info("New leader elected", leader=holder)
            if self._on_new_leader is not None:
                try:
                    self._on_new_leader(holder)
                except Exception as e:
                    log.error("on_new_leader callback failed", error=str(e), exc_info=True)

    async def _guarded(
        self,
        coro: Awaitable[T],
        timeout: float,
        stop: CancellationSignal,
    ) -> T:
        """
        Await a store round-trip, bounded by `timeout` and aborted by `stop`.

        Raises:
            asyncio.TimeoutError: timeout elapsed first
            _StopRequested: stop fired first
        """
        call = asyncio.ensure_future(coro)
        stopper = asyncio.ensure_future(stop.wait())
        try:
            done, _ = await asyncio.wait(
                {call, stopper},
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        except asyncio.CancelledError:
            call.cancel()
            raise
        finally:
            stopper.cancel()

        if call in done:
            return call.result()

        call.cancel()
        try:
            await call
        except asyncio.CancelledError:
            pass

        if stop.fired:
            raise _StopRequested()
        raise asyncio.TimeoutError()
