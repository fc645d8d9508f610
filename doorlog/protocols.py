"""
doorlog Protocol Definitions
============================

Interface contracts between the device-side components.

Components and their roles:
- Builder:     Turns user input plus collaborators into an immutable Event.
- Queue:       Durable FIFO of pending remote writes, owned by the device.
- Guard:       Advisory same-day duplicate check against the visible log.
- Engine:      Drains the queue against the remote write port, in order.
- Remote port: The server's HTTP surface (log, delete-log, last-log).

Error handling philosophy:
- Malformed input raises ValidationError and is never retried
- Network failures and non-2xx responses raise TransientRemoteError and are
  always retried through the queue, never turned into data loss
- "Nothing to delete" raises NotFoundInRemote; callers treat it as benign
- Missing configuration raises ConfigurationError
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional, Protocol, runtime_checkable

from doorlog.types import Event, Weather

# =============================================================================
# ERRORS
# =============================================================================


class DoorLogError(Exception):
    """Base for all doorlog errors."""

    pass


class ValidationError(DoorLogError):
    """Raised for malformed or missing fields. Never retried."""

    pass


class TransientRemoteError(DoorLogError):
    """Raised for network failures, timeouts and non-2xx responses.

    The entry stays queued and is retried on a later drain cycle.
    """

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class NotFoundInRemote(DoorLogError):
    """Raised when the server could not resolve a row for a selector."""

    pass


class AlreadyRecorded(DoorLogError):
    """Raised when the server already holds a row for the event's natural key."""

    pass


class ConfigurationError(DoorLogError):
    """Raised when required settings (e.g. the API URL) are missing."""

    pass


class DuplicateVisitError(DoorLogError):
    """Raised by the duplicate guard when a door was already logged today."""

    def __init__(self, door_number: str, street_name: str, existing_status: str):
        self.door_number = door_number
        self.street_name = street_name
        self.existing_status = existing_status
        super().__init__(
            f"{door_number}, {street_name} was already logged today ({existing_status})"
        )


# =============================================================================
# PORTS
# =============================================================================


@runtime_checkable
class RemoteWritePort(Protocol):
    """What the sync engine needs from the server.

    Both calls return normally on success and raise one of the errors above
    otherwise. A timeout is a TransientRemoteError.
    """

    async def create(self, event: Event) -> None: ...

    async def delete(self, timestamp: str) -> None: ...


@runtime_checkable
class LastLogPort(Protocol):
    """Source of the last known position, used for first-entry carry-over."""

    async def last_log(self, user: str) -> Optional[Dict[str, Any]]: ...


@runtime_checkable
class WeatherSource(Protocol):
    """Enrichment collaborator. Must never raise."""

    async def fetch(self, instant: datetime) -> Weather: ...
