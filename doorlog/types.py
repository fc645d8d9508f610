"""
Shared types for doorlog.

The Event is the atomic unit of work: one recorded visit outcome. Everything
the device queues, shows, or sends to the server is built from these
dataclasses, and the wire format (camelCase JSON) is defined here too.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

# === Shared Utility Functions ===


def format_timestamp(dt: datetime) -> str:
    """Format an instant as UTC ISO-8601 with milliseconds and a Z suffix."""
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def utc_now() -> str:
    """Get current timestamp as ISO string in UTC."""
    return format_timestamp(datetime.now(timezone.utc))


class ParseDatetimeError(ValueError):
    """Structured parse failure for ISO datetime strings."""

    def __init__(self, value: str, cause: Exception):
        super().__init__(f"Invalid ISO datetime string: {value!r}")
        self.value = value
        self.cause = cause


def parse_datetime(s: Optional[str], *, strict: bool = False) -> Optional[datetime]:
    """Parse ISO datetime string.

    Returns None for empty input. Invalid input returns None unless
    ``strict`` is set, in which case ParseDatetimeError is raised.
    """
    if not s:
        return None
    try:
        return datetime.fromisoformat(s.replace("Z", "+00:00"))
    except (TypeError, ValueError) as exc:
        if strict:
            raise ParseDatetimeError(s, exc) from exc
        return None


# === Enums ===


class Status(str, Enum):
    """Outcome of a door visit."""

    NOT_HOME = "not-home"
    OPENED = "opened"
    ESTIMATE = "estimate"

    @property
    def label(self) -> str:
        """Human-readable label ("Not Home")."""
        return self.value.replace("-", " ").title()


VALID_STATUS_VALUES = frozenset(s.value for s in Status)


class QueueOp(str, Enum):
    """Kind of pending remote write."""

    CREATE = "create"
    DELETE = "delete"


# === Event Types ===


@dataclass(frozen=True)
class Weather:
    """Weather enrichment attached to an event."""

    temp: Optional[float] = None
    condition: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {"temp": self.temp, "condition": self.condition}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "Weather":
        data = data or {}
        return cls(temp=data.get("temp"), condition=data.get("condition") or "")


@dataclass(frozen=True)
class DayContext:
    """Per-day answers from the daily check-in."""

    day_of_week: str
    groomed: str = ""
    mood: str = ""
    jacket: str = ""


@dataclass(frozen=True)
class Event:
    """One recorded visit outcome.

    ``timestamp`` is the only handle available for later deletion, so it is
    never regenerated or changed once an Event exists.
    """

    door_number: str
    street_name: str
    date: str  # YYYY-MM-DD, device-local
    timestamp: str  # ISO-8601 UTC, unique per device
    interval: str  # HH:MM bucket start
    status: Status
    day: DayContext
    weather: Weather
    user: str
    is_first_entry: bool = False
    # Date of the log this entry was carried over from (first entries only)
    original_date: Optional[str] = None

    @property
    def natural_key(self) -> tuple:
        return (self.door_number, self.street_name, self.date)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the camelCase wire format used by the server."""
        data = {
            "doorNumber": self.door_number,
            "streetName": self.street_name,
            "date": self.date,
            "dayOfWeek": self.day.day_of_week,
            "groomed": self.day.groomed,
            "mood": self.day.mood,
            "jacket": self.day.jacket,
            "weather": self.weather.to_dict(),
            "interval": self.interval,
            "status": self.status.value,
            "timestamp": self.timestamp,
            "user": self.user,
            "isFirstEntry": self.is_first_entry,
        }
        if self.original_date:
            data["originalDate"] = self.original_date
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Event":
        return cls(
            door_number=str(data["doorNumber"]),
            street_name=data["streetName"],
            date=data["date"],
            timestamp=data["timestamp"],
            interval=data["interval"],
            status=Status(data["status"]),
            day=DayContext(
                day_of_week=data.get("dayOfWeek", ""),
                groomed=data.get("groomed", ""),
                mood=data.get("mood", ""),
                jacket=data.get("jacket", ""),
            ),
            weather=Weather.from_dict(data.get("weather")),
            user=data.get("user", ""),
            is_first_entry=bool(data.get("isFirstEntry", False)),
            original_date=data.get("originalDate"),
        )


# === Sync Types ===


@dataclass
class QueueEntry:
    """A remote write waiting in the local queue.

    Creates carry the full Event; deletes carry only the timestamp of the
    Event they remove.
    """

    op: QueueOp
    timestamp: str
    event: Optional[Event] = None
    queued_at: Optional[str] = None
    # Retry tracking
    retry_count: int = 0
    last_error: Optional[str] = None
    last_attempt_at: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "op": self.op.value,
            "timestamp": self.timestamp,
            "event": self.event.to_dict() if self.event else None,
            "queuedAt": self.queued_at,
            "retryCount": self.retry_count,
            "lastError": self.last_error,
            "lastAttemptAt": self.last_attempt_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QueueEntry":
        event = data.get("event")
        return cls(
            op=QueueOp(data["op"]),
            timestamp=data["timestamp"],
            event=Event.from_dict(event) if event else None,
            queued_at=data.get("queuedAt"),
            retry_count=data.get("retryCount", 0) or 0,
            last_error=data.get("lastError"),
            last_attempt_at=data.get("lastAttemptAt"),
        )


@dataclass
class SyncResult:
    """Result of one drain cycle."""

    pushed: int = 0  # Entries confirmed by a success response
    confirmed_existing: int = 0  # 409 on create / 404 on delete
    rejected: int = 0  # Moved to the rejected list after a 400
    remaining: int = 0  # Entries still queued after the cycle
    aborted: bool = False  # Stopped early on a transient failure
    skipped: bool = False  # Another drain cycle was already running
    errors: List[str] = field(default_factory=list)
    # "op:timestamp" -> outcome for every entry this cycle settled
    outcomes: Dict[str, str] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return not self.aborted and len(self.errors) == 0
