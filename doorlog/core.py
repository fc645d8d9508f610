"""
doorlog Core - door-to-door visit logging that survives bad signal.

This module provides the DoorLog class, the single entry point the surface
(CLI or any other front end) talks to. It wires device storage, the event
builder, the duplicate guard and the sync engine together, and turns their
results and errors into user-facing notices.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from doorlog.config import ClientSettings, get_settings
from doorlog.dedup import check_duplicate
from doorlog.events import TimestampClock, build_event, build_first_entry, local_date
from doorlog.protocols import (
    DuplicateVisitError,
    LastLogPort,
    RemoteWritePort,
    TransientRemoteError,
    ValidationError,
    WeatherSource,
)
from doorlog.remote import LogApiClient
from doorlog.storage import KeyValueStore, LocalQueueStore, LogHistory
from doorlog.sync_engine import Outcome, SyncEngine
from doorlog.types import Event, SyncResult, Weather
from doorlog.weather import NullWeather, WeatherClient

logger = logging.getLogger(__name__)

STREET_KEY = "streetName"
DOOR_KEY = "doorNumber"
USER_KEY = "userId"
CHECK_IN_PREFIX = "checkIn:"

DEFAULT_DOOR = "1"


@dataclass(frozen=True)
class Notice:
    """A transient message for the person holding the device."""

    level: str  # "info", "warning" or "error"
    message: str


def resolve_user_id(kv: KeyValueStore, configured: Optional[str] = None) -> str:
    """Configured user id, else the one generated on first run."""
    if configured and configured.strip():
        return configured.strip()
    user = kv.get(USER_KEY)
    if not user:
        user = f"usr_{uuid.uuid4().hex[:12]}"
        kv.set(USER_KEY, user)
        logger.info(f"Generated device user id {user}")
    return user


class DoorLog:
    """Device-side controller.

    Args:
        settings: Client settings (defaults to the environment).
        kv: Device storage; defaults to the SQLite file under settings.home.
        remote: Remote port; defaults to an HTTP client for settings.api_url.
        weather: Weather source; defaults to Open-Meteo when coordinates are set.
        now_fn: Clock, injectable for tests.
    """

    def __init__(
        self,
        settings: Optional[ClientSettings] = None,
        kv: Optional[KeyValueStore] = None,
        remote: Optional[RemoteWritePort] = None,
        weather: Optional[WeatherSource] = None,
        now_fn=None,
    ):
        self.settings = settings or get_settings()
        self._kv = kv or KeyValueStore(self.settings.db_path)
        self._now_fn = now_fn or (lambda: datetime.now(timezone.utc))
        self._clock = TimestampClock(self._kv, self._now_fn)

        if remote is None and self.settings.api_url:
            remote = LogApiClient(self.settings.api_url, timeout=self.settings.timeout)
        self._remote = remote

        if weather is None:
            if self.settings.latitude is not None and self.settings.longitude is not None:
                weather = WeatherClient(
                    self.settings.latitude, self.settings.longitude, url=self.settings.weather_url
                )
            else:
                weather = NullWeather()
        self._weather = weather

        self.queue = LocalQueueStore(self._kv)
        self.history = LogHistory(self._kv)
        self.engine = SyncEngine(
            self.queue,
            remote,
            backoff_base=self.settings.backoff_base,
            backoff_max=self.settings.backoff_max,
        )
        self.user = resolve_user_id(self._kv, self.settings.user)

    async def aclose(self) -> None:
        if isinstance(self._remote, LogApiClient):
            await self._remote.aclose()

    # === Address state ===

    @property
    def street_name(self) -> Optional[str]:
        return self._kv.get(STREET_KEY)

    @property
    def door_number(self) -> str:
        return self._kv.get(DOOR_KEY) or DEFAULT_DOOR

    def set_street(self, name: str) -> str:
        name = " ".join((name or "").split())
        if not name:
            raise ValidationError("Street name cannot be empty")
        self._kv.set(STREET_KEY, name)
        return name

    def set_door(self, number: Any) -> str:
        digits = "".join(ch for ch in str(number) if ch.isdigit())
        if not digits or int(digits) < 1:
            raise ValidationError("Door number must be a positive whole number")
        value = str(int(digits))
        self._kv.set(DOOR_KEY, value)
        return value

    def next_door(self) -> str:
        return self.set_door(int(self.door_number) + 1)

    def previous_door(self) -> str:
        return self.set_door(max(1, int(self.door_number) - 1))

    # === Daily check-in ===

    def check_in(self, groomed: str = "", mood: str = "", jacket: str = "") -> Dict[str, str]:
        """Record today's check-in answers."""
        answers = {"groomed": groomed, "mood": mood, "jacket": jacket}
        self._kv.set(CHECK_IN_PREFIX + self.today(), answers)
        return answers

    def get_check_in(self, date: Optional[str] = None) -> Optional[Dict[str, str]]:
        return self._kv.get(CHECK_IN_PREFIX + (date or self.today()))

    # === Lifecycle ===

    def today(self) -> str:
        return local_date(self._now_fn())

    async def start(self, online: bool) -> Tuple[List[Notice], Optional[SyncResult]]:
        """Open the day and drain whatever the last session left queued."""
        self.engine.online = online
        notices = await self.ensure_day_started()
        result = None
        if online and self.queue.count():
            result = await self.engine.drain()
            notices.extend(self._drain_notices(result))
        return notices, result

    async def set_online(self, online: bool) -> List[Notice]:
        result = await self.engine.set_online(online)
        return self._drain_notices(result) if result else []

    async def sync(self) -> Tuple[SyncResult, List[Notice]]:
        result = await self.engine.drain()
        return result, self._drain_notices(result)

    async def run_sync(self, stop: asyncio.Event) -> None:
        """Stay online and retry queued changes with backoff until ``stop`` is set."""
        await self.set_online(True)
        await self.engine.run(stop)

    async def check_server(self) -> Optional[bool]:
        """Ping the server. None when no HTTP server is configured."""
        if not isinstance(self._remote, LogApiClient):
            return None
        return await self._remote.health()

    async def ensure_day_started(self) -> List[Notice]:
        """Roll the history over and add the carried-over first entry."""
        today = self.today()
        if self.history.date == today:
            return []
        previous = self.history.rollover(today)
        source = previous.to_dict() if previous else await self._remote_last_position()
        if not source:
            return []

        instant = self._clock.next()
        try:
            event = build_first_entry(
                source=source,
                instant=instant,
                user=self.user,
                weather=await self._weather.fetch(instant),
                check_in=self.get_check_in(today),
                interval_minutes=self.settings.interval_minutes,
            )
        except ValidationError as e:
            logger.warning(f"Could not build first entry from {source}: {e}")
            return []
        if event is None:
            return []
        self.history.add(event)
        outcome = await self.engine.submit_create(event)
        logger.info(f"First entry {event.timestamp} for {today}: {outcome.value}")
        return [Notice("info", f"Started {today} at {event.door_number}, {event.street_name}")]

    async def _remote_last_position(self) -> Optional[Dict[str, Any]]:
        if not self.engine.online or not isinstance(self._remote, LastLogPort):
            return None
        try:
            return await self._remote.last_log(self.user)
        except TransientRemoteError as e:
            logger.info(f"Last position unavailable: {e}")
            return None

    # === Visits ===

    async def record_visit(self, status: Any) -> Tuple[Optional[Event], Notice]:
        """Log the current door with ``status``."""
        await self.ensure_day_started()
        instant = self._clock.next()
        try:
            event = build_event(
                street_name=self.street_name or "",
                door_number=self.door_number,
                status=status,
                instant=instant,
                user=self.user,
                weather=Weather(),
                check_in=self.get_check_in(),
                interval_minutes=self.settings.interval_minutes,
            )
            check_duplicate(event, self.history.items())
        except ValidationError as e:
            return None, Notice("error", str(e))
        except DuplicateVisitError as e:
            return None, Notice("warning", f"Already logged: {e}")

        event = replace(event, weather=await self._weather.fetch(instant))
        # Check again: another visit may have been logged during the weather lookup
        try:
            check_duplicate(event, self.history.items())
        except DuplicateVisitError as e:
            return None, Notice("warning", f"Already logged: {e}")
        self.history.add(event)
        outcome = await self.engine.submit_create(event)
        label = f"{event.door_number}, {event.street_name}. {event.status.label}"
        return event, self._submit_notice(outcome, label)

    async def delete_visit(self, timestamp: str) -> Notice:
        """Delete a logged visit by its timestamp."""
        event = self.history.find(timestamp)
        if event is not None and event.is_first_entry:
            return Notice("error", "The day's first entry cannot be deleted")
        outcome = await self.engine.submit_delete(timestamp)
        self.history.remove(timestamp)
        return self._submit_notice(outcome, f"Deleted {timestamp}")

    # === Reporting ===

    def status(self) -> Dict[str, Any]:
        return {
            "user": self.user,
            "street": self.street_name,
            "door": self.door_number,
            "online": self.engine.online,
            "configured": self._remote is not None,
            "pending": self.queue.count(),
            "rejected": len(self.queue.rejected()),
            "consecutive_failures": self.engine.consecutive_failures,
            "next_retry_in": self.engine.next_retry_delay(),
            "history_date": self.history.date,
            "logged_today": len([e for e in self.history.items() if not e.is_first_entry]),
        }

    def _submit_notice(self, outcome: Outcome, label: str) -> Notice:
        if outcome == Outcome.SENT:
            return Notice("info", label)
        if outcome == Outcome.QUEUED:
            return Notice("info", f"{label} (queued, will sync when online)")
        if outcome == Outcome.CANCELLED:
            return Notice("info", f"{label} (removed before it was sent)")
        if outcome == Outcome.ALREADY_RECORDED:
            return Notice("warning", f"{label} (server already had this door today)")
        if outcome == Outcome.ALREADY_ABSENT:
            return Notice("info", f"{label} (already gone on the server)")
        return Notice("error", f"{label} (rejected by the server, see `doorlog rejected`)")

    def _drain_notices(self, result: SyncResult) -> List[Notice]:
        notices = []
        synced = result.pushed + result.confirmed_existing
        if synced:
            notices.append(Notice("info", f"Synced {synced} queued change(s)"))
        if result.rejected:
            notices.append(Notice("error", f"{result.rejected} change(s) rejected by the server"))
        if result.aborted:
            notices.append(Notice("warning", f"Sync paused, {result.remaining} still queued"))
        return notices

