"""
Pytest fixtures and test configuration for doorlog tests.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

import pytest

from doorlog.config import ClientSettings
from doorlog.protocols import NotFoundInRemote
from doorlog.storage import KeyValueStore, LocalQueueStore, LogHistory
from doorlog.types import DayContext, Event, Status, Weather


class FakeRemote:
    """In-memory server implementing the remote write and last-log ports.

    ``failures`` is a list of exceptions raised by the next calls, in order.
    Setting ``gate`` holds every create until the event is set, which keeps
    an entry in flight for as long as a test needs.
    """

    def __init__(self):
        self.rows: Dict[str, Event] = {}
        self.calls: List[tuple] = []
        self.failures: List[Exception] = []
        self.gate: Optional[asyncio.Event] = None
        self.position: Optional[dict] = None

    def _maybe_fail(self) -> None:
        if self.failures:
            raise self.failures.pop(0)

    async def create(self, event: Event) -> None:
        self.calls.append(("create", event.timestamp))
        if self.gate is not None:
            await self.gate.wait()
        self._maybe_fail()
        self.rows[event.timestamp] = event

    async def delete(self, timestamp: str) -> None:
        self.calls.append(("delete", timestamp))
        self._maybe_fail()
        if timestamp not in self.rows:
            raise NotFoundInRemote(f"No remote row for {timestamp}")
        del self.rows[timestamp]

    async def last_log(self, user: str) -> Optional[dict]:
        self.calls.append(("last_log", user))
        self._maybe_fail()
        return self.position

    def timestamps(self, op: str) -> List[str]:
        return [ts for kind, ts in self.calls if kind == op]


class FakeWeather:
    def __init__(self, temp: Optional[float] = 12.0, condition: str = "Clear"):
        self.weather = Weather(temp=temp, condition=condition)
        self.calls = 0

    async def fetch(self, instant: datetime) -> Weather:
        self.calls += 1
        return self.weather


class SteppingClock:
    """Wall clock that advances by ``step`` each call."""

    def __init__(self, start: datetime, step: timedelta = timedelta(seconds=5)):
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + self.step
        return current


@pytest.fixture
def kv(tmp_path):
    """Key/value store in a temporary directory."""
    return KeyValueStore(tmp_path / "doorlog.db")


@pytest.fixture
def queue(kv):
    return LocalQueueStore(kv)


@pytest.fixture
def history(kv):
    return LogHistory(kv)


@pytest.fixture
def remote():
    return FakeRemote()


@pytest.fixture
def weather():
    return FakeWeather()


@pytest.fixture
def settings(tmp_path):
    return ClientSettings(
        home=tmp_path,
        api_url=None,
        user="usr_test000001",
        backoff_base=2.0,
        backoff_max=300.0,
        _env_file=None,
    )


@pytest.fixture
def clock():
    # Local noon, so the local date is stable whatever the machine's zone
    return SteppingClock(datetime(2024, 3, 1, 12, 0, 0).astimezone())


_counter = {"n": 0}


@pytest.fixture
def make_event():
    """Factory for Events with unique, increasing timestamps."""

    def _make(
        door: str = "12",
        street: str = "Maple Avenue",
        status: Status = Status.OPENED,
        date: str = "2024-03-01",
        is_first_entry: bool = False,
        timestamp: Optional[str] = None,
    ) -> Event:
        _counter["n"] += 1
        if timestamp is None:
            instant = datetime(2024, 3, 1, 10, 0, tzinfo=timezone.utc) + timedelta(
                milliseconds=_counter["n"]
            )
            timestamp = instant.strftime("%Y-%m-%dT%H:%M:%S.") + f"{instant.microsecond // 1000:03d}Z"
        return Event(
            door_number=door,
            street_name=street,
            date=date,
            timestamp=timestamp,
            interval="10:00",
            status=status,
            day=DayContext(day_of_week="Friday"),
            weather=Weather(temp=11.0, condition="Clear"),
            user="usr_test000001",
            is_first_entry=is_first_entry,
        )

    return _make
