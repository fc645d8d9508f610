"""Local queue of pending remote writes.

A durable FIFO kept under one storage key. The queue is loaded once at
startup and every mutation is written straight back, so a crash between two
calls never loses an entry. Only the sync engine mutates it.
"""

import logging
from typing import List, Optional

from doorlog.logging_config import log_enqueue
from doorlog.types import QueueEntry, QueueOp, utc_now

from .kv import KeyValueStore

logger = logging.getLogger(__name__)

QUEUE_KEY = "logQueue"
REJECTED_KEY = "rejectedLogs"

# Cap on stored error text per entry
MAX_ERROR_LENGTH = 500


class LocalQueueStore:
    """Durable ordered sequence of QueueEntry records.

    Args:
        kv: Device key/value storage the queue persists into.
    """

    def __init__(self, kv: KeyValueStore):
        self._kv = kv
        self._entries: List[QueueEntry] = self._load(QUEUE_KEY)
        if self._entries:
            logger.info(f"Loaded {len(self._entries)} pending queue entries")

    def _load(self, key: str) -> List[QueueEntry]:
        entries = []
        unreadable = []
        for raw in self._kv.get(key, []) or []:
            try:
                entries.append(QueueEntry.from_dict(raw))
            except (KeyError, TypeError, ValueError) as e:
                logger.error(f"Unreadable entry in {key} moved aside: {e}")
                unreadable.append(raw)
        if unreadable:
            # Keep unreadable entries out of the FIFO but do not throw them away
            self._kv.set(f"corruptQueue:{key}:{utc_now()}", unreadable)
            self._kv.set(key, [e.to_dict() for e in entries])
        return entries

    def _save(self) -> None:
        self._kv.set(QUEUE_KEY, [e.to_dict() for e in self._entries])

    # === Queue Operations ===

    def enqueue(self, entry: QueueEntry, reason: str = "offline") -> QueueEntry:
        """Append an entry at the tail."""
        if entry.queued_at is None:
            entry.queued_at = utc_now()
        self._entries.append(entry)
        self._save()
        log_enqueue(entry.op.value, entry.timestamp, reason, len(self._entries))
        return entry

    def entries(self) -> List[QueueEntry]:
        """Snapshot of the queue in FIFO order."""
        return list(self._entries)

    def head(self) -> Optional[QueueEntry]:
        return self._entries[0] if self._entries else None

    def count(self) -> int:
        return len(self._entries)

    def remove(self, entry: QueueEntry) -> bool:
        """Remove one confirmed entry (matched by op and timestamp)."""
        for i, existing in enumerate(self._entries):
            if existing.op == entry.op and existing.timestamp == entry.timestamp:
                del self._entries[i]
                self._save()
                return True
        return False

    def record_failure(self, entry: QueueEntry, error: str) -> int:
        """Record a failed attempt on a queued entry. Returns the new retry count."""
        for existing in self._entries:
            if existing.op == entry.op and existing.timestamp == entry.timestamp:
                existing.retry_count += 1
                existing.last_error = error[:MAX_ERROR_LENGTH]
                existing.last_attempt_at = utc_now()
                self._save()
                return existing.retry_count
        return 0

    def cancel_create(self, timestamp: str) -> bool:
        """Drop a still-pending create for ``timestamp``.

        Used when the user deletes an event that never reached the server.
        Returns True if a create was removed.
        """
        before = len(self._entries)
        self._entries = [
            e for e in self._entries if not (e.op == QueueOp.CREATE and e.timestamp == timestamp)
        ]
        if len(self._entries) != before:
            self._save()
            logger.info(f"QUEUE | cancel | {timestamp} | pending={len(self._entries)}")
            return True
        return False

    def purge(self, timestamp: str) -> int:
        """Remove every entry (create or delete) for ``timestamp``."""
        before = len(self._entries)
        self._entries = [e for e in self._entries if e.timestamp != timestamp]
        removed = before - len(self._entries)
        if removed:
            self._save()
        return removed

    # === Rejected (dead letter) ===

    def reject(self, entry: QueueEntry, reason: str) -> None:
        """Move an entry the server refused as malformed to the rejected list.

        Rejected entries are kept in storage so nothing is silently lost.
        """
        self.remove(entry)
        entry.last_error = reason[:MAX_ERROR_LENGTH]
        entry.last_attempt_at = utc_now()
        rejected = self._load(REJECTED_KEY)
        rejected.append(entry)
        self._kv.set(REJECTED_KEY, [e.to_dict() for e in rejected])
        logger.warning(f"QUEUE | rejected | {entry.op.value} | {entry.timestamp} | {reason}")

    def rejected(self) -> List[QueueEntry]:
        return self._load(REJECTED_KEY)

    def drop_rejected(self, timestamp: str) -> bool:
        """Forget a rejected create for ``timestamp``, so it is never requeued."""
        rejected = self._load(REJECTED_KEY)
        kept = [e for e in rejected if not (e.op == QueueOp.CREATE and e.timestamp == timestamp)]
        if len(kept) == len(rejected):
            return False
        self._kv.set(REJECTED_KEY, [e.to_dict() for e in kept])
        logger.info(f"QUEUE | drop rejected | {timestamp}")
        return True

    def requeue_rejected(self) -> int:
        """Put every rejected entry back at the tail of the queue."""
        rejected = self._load(REJECTED_KEY)
        for entry in rejected:
            entry.retry_count = 0
            entry.last_error = None
            self._entries.append(entry)
        self._save()
        self._kv.set(REJECTED_KEY, [])
        return len(rejected)
