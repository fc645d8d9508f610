"""Sync engine for doorlog.

Drains the local queue against the server, one entry at a time and in FIFO
order, so creates and deletes for the same event are applied in the order
they were recorded.

Entry lifecycle: PENDING -> IN_FLIGHT -> removed (confirmed) or PENDING
(retry). Every write is enqueued before it is attempted, so a crash mid-write
leaves the entry queued rather than lost. A transient failure stops the
current cycle; later entries wait behind the failed one.

Only one drain cycle runs at a time. The guard is a plain flag checked and
set with no await in between, which is enough on a single event loop.
"""

import asyncio
import logging
import time
from enum import Enum
from typing import Dict, Optional

from doorlog.logging_config import log_drain
from doorlog.protocols import (
    AlreadyRecorded,
    NotFoundInRemote,
    RemoteWritePort,
    TransientRemoteError,
    ValidationError,
)
from doorlog.storage.queue import LocalQueueStore
from doorlog.types import Event, QueueEntry, QueueOp, SyncResult

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    """What happened to one submitted create or delete."""

    SENT = "sent"  # Confirmed by a success response
    ALREADY_RECORDED = "already_recorded"  # 409: server holds a row for the key
    ALREADY_ABSENT = "already_absent"  # 404 on delete: nothing to remove
    QUEUED = "queued"  # Waiting for a later drain cycle
    REJECTED = "rejected"  # 400: moved to the rejected list
    CANCELLED = "cancelled"  # Create and delete cancelled each other locally


def outcome_key(op: QueueOp, timestamp: str) -> str:
    return f"{op.value}:{timestamp}"


class SyncEngine:
    """Queue drainer with single-flight, cancel-in-place and backoff.

    Args:
        queue: The device's durable queue.
        remote: Remote write port, or None when no server is configured
            (everything stays queued).
        backoff_base: First retry delay after a failed cycle, in seconds.
        backoff_max: Upper bound on the retry delay.
    """

    def __init__(
        self,
        queue: LocalQueueStore,
        remote: Optional[RemoteWritePort],
        backoff_base: float = 2.0,
        backoff_max: float = 300.0,
    ):
        self._queue = queue
        self._remote = remote
        self.backoff_base = backoff_base
        self.backoff_max = backoff_max
        self.online = False
        self._draining = False
        self._in_flight: Optional[QueueEntry] = None
        self._failures = 0
        self._wake = asyncio.Event()
        self._idle = asyncio.Event()
        self._idle.set()
        # Outcome slots for submissions waiting on another drain cycle
        self._waiting: Dict[str, Optional[str]] = {}

    @property
    def is_draining(self) -> bool:
        return self._draining

    @property
    def consecutive_failures(self) -> int:
        return self._failures

    @property
    def in_flight(self) -> Optional[QueueEntry]:
        return self._in_flight

    def next_retry_delay(self) -> Optional[float]:
        """Seconds to wait before the next automatic retry (None if no failures)."""
        if self._failures == 0:
            return None
        return min(self.backoff_base * 2 ** (self._failures - 1), self.backoff_max)

    # === Connectivity ===

    async def set_online(self, online: bool) -> Optional[SyncResult]:
        """Record a connectivity change; a transition to online drains at once."""
        was_online = self.online
        self.online = online
        self._wake.set()
        if online and not was_online:
            logger.info("Back online, draining queue")
            return await self.drain()
        return None

    # === Submission ===

    async def submit_create(self, event: Event) -> Outcome:
        """Queue a create and, when online, push it through a drain cycle."""
        entry = QueueEntry(op=QueueOp.CREATE, timestamp=event.timestamp, event=event)
        self._queue.enqueue(entry, reason="online" if self.online else "offline")
        self._wake.set()
        return await self._settle(entry)

    async def submit_delete(self, timestamp: str) -> Outcome:
        """Delete the event with ``timestamp``.

        If its create is still waiting in the queue (and not in flight), or was
        rejected by the server and never stored there, it is dropped locally
        without contacting the server.
        """
        in_flight = self._in_flight
        in_flight_create = (
            in_flight is not None
            and in_flight.op == QueueOp.CREATE
            and in_flight.timestamp == timestamp
        )
        if not in_flight_create and self._queue.cancel_create(timestamp):
            self._queue.purge(timestamp)
            logger.info(f"Delete of {timestamp} cancelled its pending create in place")
            return Outcome.CANCELLED

        if self._queue.drop_rejected(timestamp):
            logger.info(f"Delete of {timestamp} dropped its rejected create")
            return Outcome.CANCELLED

        entry = QueueEntry(op=QueueOp.DELETE, timestamp=timestamp)
        self._queue.enqueue(entry, reason="online" if self.online else "offline")
        self._wake.set()
        return await self._settle(entry)

    async def _settle(self, entry: QueueEntry) -> Outcome:
        if not self.online or self._remote is None:
            return Outcome.QUEUED
        key = outcome_key(entry.op, entry.timestamp)
        self._waiting[key] = None
        try:
            result = await self.drain()
            if not result.skipped:
                return Outcome(result.outcomes.get(key, Outcome.QUEUED))
            # The running cycle picks the entry up from the queue
            await self._idle.wait()
            return Outcome(self._waiting.get(key) or Outcome.QUEUED)
        finally:
            self._waiting.pop(key, None)

    # === Drain ===

    async def _send(self, entry: QueueEntry) -> None:
        if entry.op == QueueOp.CREATE:
            if entry.event is None:
                raise ValidationError(f"Queued create {entry.timestamp} has no event")
            await self._remote.create(entry.event)
        else:
            await self._remote.delete(entry.timestamp)

    async def drain(self) -> SyncResult:
        """Run one drain cycle over the queue."""
        result = SyncResult()
        if self._draining:
            result.skipped = True
            result.remaining = self._queue.count()
            return result
        if self._remote is None:
            result.errors.append("No server configured - entries stay queued")
            result.remaining = self._queue.count()
            return result

        self._draining = True
        self._idle.clear()
        started = time.monotonic()
        try:
            while True:
                entry = self._queue.head()
                if entry is None:
                    break
                key = outcome_key(entry.op, entry.timestamp)
                self._in_flight = entry
                try:
                    await self._send(entry)
                except AlreadyRecorded as e:
                    logger.info(f"{key} already on server: {e}")
                    self._queue.remove(entry)
                    result.confirmed_existing += 1
                    result.outcomes[key] = Outcome.ALREADY_RECORDED.value
                except NotFoundInRemote as e:
                    logger.info(f"{key} already absent on server: {e}")
                    self._queue.remove(entry)
                    result.confirmed_existing += 1
                    result.outcomes[key] = Outcome.ALREADY_ABSENT.value
                except ValidationError as e:
                    self._queue.reject(entry, str(e))
                    result.rejected += 1
                    result.errors.append(f"Rejected {key}: {e}")
                    result.outcomes[key] = Outcome.REJECTED.value
                except TransientRemoteError as e:
                    retry_count = self._queue.record_failure(entry, str(e))
                    logger.warning(f"Push of {key} failed (retry {retry_count}): {e}")
                    result.errors.append(f"Failed to push {key}: {e}")
                    result.aborted = True
                    break
                except Exception as e:
                    retry_count = self._queue.record_failure(entry, str(e))
                    logger.error(
                        f"Unexpected error pushing {key} (retry {retry_count}): {e}",
                        exc_info=True,
                    )
                    result.errors.append(f"Error pushing {key}: {e}")
                    result.aborted = True
                    break
                else:
                    self._queue.remove(entry)
                    result.pushed += 1
                    result.outcomes[key] = Outcome.SENT.value
                finally:
                    self._in_flight = None
                    if key in self._waiting:
                        self._waiting[key] = result.outcomes.get(key)
        finally:
            self._draining = False
            self._idle.set()
            self._wake.set()

        self._failures = self._failures + 1 if result.aborted else 0
        result.remaining = self._queue.count()
        log_drain(result, time.monotonic() - started)
        return result

    # === Background retry loop ===

    async def _wait(self, timeout: Optional[float], stop: asyncio.Event) -> bool:
        """Wait for a wake-up, a stop request, or the timeout. True if woken."""
        waiters = [asyncio.ensure_future(self._wake.wait()), asyncio.ensure_future(stop.wait())]
        try:
            done, _ = await asyncio.wait(
                waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for waiter in waiters:
                waiter.cancel()
        return bool(done)

    async def run(self, stop: asyncio.Event) -> None:
        """Retry queued entries while online, backing off after failures.

        Transitions to online and new submissions drain immediately on their
        own; this loop only covers the timed retries in between. With no
        server configured it only waits for the stop request.
        """
        while not stop.is_set():
            timeout = None
            ready = self.online and self._remote is not None and not self._draining
            if ready and self._queue.count():
                timeout = self.next_retry_delay() or 0.0
            self._wake.clear()
            woken = await self._wait(timeout, stop)
            if stop.is_set():
                break
            if not woken and timeout is not None:
                await self.drain()
