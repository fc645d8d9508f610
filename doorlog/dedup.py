"""Same-day duplicate guard.

A second visit to the same door on the same day is refused before it is
queued, whatever its status. The check is advisory: the server repeats it
at write time, because a replayed queue may outlive the in-memory history.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from doorlog.protocols import DuplicateVisitError
from doorlog.types import Event

logger = logging.getLogger(__name__)


def normalize_street(name: str) -> str:
    return " ".join(name.split()).casefold()


def find_duplicate(candidate: Event, history: Iterable[Event]) -> Optional[Event]:
    """Return the history item that collides with ``candidate``, if any.

    First entries are ignored on both sides.
    """
    if candidate.is_first_entry:
        return None
    street = normalize_street(candidate.street_name)
    door = candidate.door_number.strip()
    for item in history:
        if item.is_first_entry:
            continue
        if item.door_number.strip() == door and normalize_street(item.street_name) == street:
            return item
    return None


def check_duplicate(candidate: Event, history: Iterable[Event]) -> None:
    """Raise DuplicateVisitError if ``candidate`` repeats a door logged today."""
    existing = find_duplicate(candidate, history)
    if existing is not None:
        logger.info(
            f"Duplicate visit refused: {candidate.door_number}, {candidate.street_name} "
            f"(already {existing.status.value} at {existing.timestamp})"
        )
        raise DuplicateVisitError(
            candidate.door_number, candidate.street_name, existing.status.value
        )
