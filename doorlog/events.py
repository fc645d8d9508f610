"""Event builder.

Assembles an immutable Event from user input plus the injected
collaborators (clock, weather, identity). Nothing here talks to the queue
or the network.
"""

import logging
import re
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from doorlog.protocols import ValidationError
from doorlog.storage.kv import KeyValueStore
from doorlog.types import (
    VALID_STATUS_VALUES,
    DayContext,
    Event,
    Status,
    Weather,
    format_timestamp,
    parse_datetime,
)

logger = logging.getLogger(__name__)

LAST_TIMESTAMP_KEY = "lastTimestamp"

_DOOR_RE = re.compile(r"^[0-9]+$")


class TimestampClock:
    """Issues strictly increasing timestamps for one device.

    The last issued value is persisted, so the guarantee holds across
    restarts and when the wall clock stalls or steps backwards.
    """

    def __init__(self, kv: KeyValueStore, now_fn=None):
        self._kv = kv
        self._now_fn = now_fn or (lambda: datetime.now(timezone.utc))

    def next(self) -> datetime:
        now = self._now_fn().astimezone(timezone.utc)
        # Millisecond precision is all the wire format keeps
        now = now.replace(microsecond=(now.microsecond // 1000) * 1000)
        last = parse_datetime(self._kv.get(LAST_TIMESTAMP_KEY))
        if last is not None and now <= last:
            now = last + timedelta(milliseconds=1)
        self._kv.set(LAST_TIMESTAMP_KEY, format_timestamp(now))
        return now


def local_date(instant: datetime) -> str:
    return instant.astimezone().strftime("%Y-%m-%d")


def day_of_week(date: str) -> str:
    return datetime.strptime(date, "%Y-%m-%d").strftime("%A")


def interval_for(instant: datetime, minutes: int = 30) -> str:
    """Local ``HH:MM`` start of the bucket containing ``instant``."""
    local = instant.astimezone()
    minute_of_day = local.hour * 60 + local.minute
    start = (minute_of_day // minutes) * minutes
    return f"{start // 60:02d}:{start % 60:02d}"


def _validate(street_name: str, door_number: str, status: Any, user: str) -> Status:
    errors = []
    if not street_name or not street_name.strip():
        errors.append("streetName is required")
    if not door_number or not _DOOR_RE.match(str(door_number).strip()):
        errors.append("doorNumber must be a positive whole number")
    if not user or not user.strip():
        errors.append("user is required")
    status_value = status.value if isinstance(status, Status) else status
    if status_value not in VALID_STATUS_VALUES:
        errors.append(f"status must be one of {sorted(VALID_STATUS_VALUES)}")
    if errors:
        raise ValidationError("; ".join(errors))
    return Status(status_value)


def build_event(
    *,
    street_name: str,
    door_number: str,
    status: Any,
    instant: datetime,
    user: str,
    weather: Weather,
    check_in: Optional[Dict[str, Any]] = None,
    interval_minutes: int = 30,
) -> Event:
    """Build a visit Event.

    Args:
        instant: Creation time, normally from TimestampClock.next().
        check_in: The day's check-in answers (groomed, mood, jacket), if any.

    Raises:
        ValidationError: If any user-supplied field is malformed.
    """
    status = _validate(street_name, door_number, status, user)
    date = local_date(instant)
    check_in = check_in or {}
    return Event(
        door_number=str(door_number).strip(),
        street_name=street_name.strip(),
        date=date,
        timestamp=format_timestamp(instant),
        interval=interval_for(instant, interval_minutes),
        status=status,
        day=DayContext(
            day_of_week=day_of_week(date),
            groomed=check_in.get("groomed", ""),
            mood=check_in.get("mood", ""),
            jacket=check_in.get("jacket", ""),
        ),
        weather=weather,
        user=user.strip(),
    )


def build_first_entry(
    *,
    source: Dict[str, Any],
    instant: datetime,
    user: str,
    weather: Weather,
    check_in: Optional[Dict[str, Any]] = None,
    interval_minutes: int = 30,
) -> Optional[Event]:
    """Build the synthetic carry-over entry that opens a new day.

    ``source`` is either a previous local event (``Event.to_dict()``) or the
    server's last-log position. Returns None if it names no address.
    """
    street = (source.get("streetName") or "").strip()
    door = str(source.get("doorNumber") or "").strip()
    if not street or not _DOOR_RE.match(door):
        return None
    status = source.get("status") or Status.NOT_HOME.value
    if status not in VALID_STATUS_VALUES:
        status = Status.NOT_HOME.value
    event = build_event(
        street_name=street,
        door_number=door,
        status=status,
        instant=instant,
        user=user,
        weather=weather,
        check_in=check_in,
        interval_minutes=interval_minutes,
    )
    return replace(event, is_first_entry=True, original_date=source.get("date") or None)
