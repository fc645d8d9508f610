"""Visible log history for the active day."""

import logging
from typing import List, Optional

from doorlog.types import Event

from .kv import KeyValueStore

logger = logging.getLogger(__name__)

LOGS_KEY = "logs"
LOGS_DATE_KEY = "logsDate"


class LogHistory:
    """Newest-first list of the events recorded on the active day."""

    def __init__(self, kv: KeyValueStore):
        self._kv = kv

    @property
    def date(self) -> Optional[str]:
        return self._kv.get(LOGS_DATE_KEY)

    def items(self) -> List[Event]:
        events = []
        for raw in self._kv.get(LOGS_KEY, []) or []:
            try:
                events.append(Event.from_dict(raw))
            except (KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping unreadable history item: {e}")
        return events

    def add(self, event: Event) -> None:
        """Prepend an event (newest first)."""
        items = [event.to_dict()] + (self._kv.get(LOGS_KEY, []) or [])
        self._kv.set(LOGS_KEY, items)
        if self.date is None:
            self._kv.set(LOGS_DATE_KEY, event.date)

    def remove(self, timestamp: str) -> Optional[Event]:
        """Remove the item with ``timestamp``; returns it if present."""
        removed = None
        kept = []
        for raw in self._kv.get(LOGS_KEY, []) or []:
            if removed is None and raw.get("timestamp") == timestamp:
                removed = Event.from_dict(raw)
            else:
                kept.append(raw)
        if removed is not None:
            self._kv.set(LOGS_KEY, kept)
        return removed

    def find(self, timestamp: str) -> Optional[Event]:
        for event in self.items():
            if event.timestamp == timestamp:
                return event
        return None

    def last_real_entry(self) -> Optional[Event]:
        """Most recent entry that is not a carried-over first entry."""
        for event in self.items():
            if not event.is_first_entry:
                return event
        return None

    def rollover(self, today: str) -> Optional[Event]:
        """Start a new day if the history belongs to an earlier one.

        Returns the previous day's last real entry (None if the history was
        already for ``today`` or had no real entries).
        """
        if self.date == today:
            return None
        previous = self.last_real_entry()
        self._kv.set(LOGS_KEY, [])
        self._kv.set(LOGS_DATE_KEY, today)
        logger.info(f"History rolled over to {today}")
        return previous
