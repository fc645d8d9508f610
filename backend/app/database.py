"""Spreadsheet layout and event-log operations.

The spreadsheet has four tabs (names configurable):

- event log: one row per event, ``A:N``
- bucket: one row per (date, interval) with three counters, ``A:L``
- position: one row per user with their last address, ``A:C``
- not-home: one row per street with a comma-joined list of doors, ``A:B``

Row 1 of each tab is a header.
"""

from dataclasses import dataclass
from typing import Annotated, Any

from fastapi import Depends

from .config import Settings, get_settings
from .models import LastPosition, LogEventRequest
from .ranges import a1
from .resolver import cell, data_rows, same_date
from .sheets import SheetStore

# =============================================================================
# Column layout
# =============================================================================

EVENT_COLUMNS = [
    "Date", "DayOfWeek", "Groomed", "Mood", "Jacket", "Condition", "Temp",
    "Interval", "Street", "Door", "Status", "Timestamp", "User", "FirstEntry",
]
EVENT_LAST_COL = "N"
EVENT_DATE_COL = 0
EVENT_INTERVAL_COL = 7
EVENT_STREET_COL = 8
EVENT_DOOR_COL = 9
EVENT_STATUS_COL = 10
EVENT_TIMESTAMP_COL = 11
EVENT_FIRST_ENTRY_COL = 13

BUCKET_COLUMNS = [
    "Date", "DayOfWeek", "Interval", "Groomed", "Jacket", "Mood", "Condition",
    "Temp", "NotHome", "Opened", "Estimate", "User",
]
BUCKET_LAST_COL = "L"
# Count cells, in status order
BUCKET_COUNT_COLS = ("I", "K")
COUNT_ORDER = ("not-home", "opened", "estimate")

POSITION_COLUMNS = ["User", "Street", "Door"]
POSITION_LAST_COL = "C"

NOT_HOME_COLUMNS = ["Street", "Doors"]
NOT_HOME_LAST_COL = "B"


@dataclass(frozen=True)
class SheetLayout:
    """Tab names for one spreadsheet."""

    event_log: str = "Sheet1"
    bucket: str = "Daily Stats"
    position: str = "User Positions"
    not_home: str = "Not Home"

    @classmethod
    def from_settings(cls, settings: Settings) -> "SheetLayout":
        return cls(
            event_log=settings.event_log_sheet,
            bucket=settings.bucket_sheet,
            position=settings.position_sheet,
            not_home=settings.not_home_sheet,
        )

    @property
    def event_range(self) -> str:
        return a1(self.event_log, "A", EVENT_LAST_COL)


def get_layout(settings: Annotated[Settings, Depends(get_settings)]) -> SheetLayout:
    """FastAPI dependency for the configured tab names."""
    return SheetLayout.from_settings(settings)


Layout = Annotated[SheetLayout, Depends(get_layout)]


# =============================================================================
# Event rows
# =============================================================================


def _temp_cell(temp: float | None) -> Any:
    if temp is None:
        return ""
    return int(temp) if float(temp).is_integer() else temp


def event_to_row(event: LogEventRequest) -> list[Any]:
    """Serialize an event into event-log columns A:N."""
    return [
        event.date,
        event.day_of_week,
        event.groomed,
        event.mood,
        event.jacket,
        event.weather.condition,
        _temp_cell(event.weather.temp),
        event.interval,
        event.street_name,
        event.door_number,
        event.status,
        event.timestamp,
        event.user,
        "TRUE" if event.is_first_entry else "FALSE",
    ]


@dataclass(frozen=True)
class StoredEvent:
    """The parts of a stored event row that deletes and reverts need."""

    date: str
    interval: str
    street_name: str
    door_number: str
    status: str
    timestamp: str
    is_first_entry: bool

    @classmethod
    def from_row(cls, row: list[str]) -> "StoredEvent":
        return cls(
            date=cell(row, EVENT_DATE_COL),
            interval=cell(row, EVENT_INTERVAL_COL),
            street_name=cell(row, EVENT_STREET_COL),
            door_number=cell(row, EVENT_DOOR_COL),
            status=cell(row, EVENT_STATUS_COL),
            timestamp=cell(row, EVENT_TIMESTAMP_COL),
            is_first_entry=cell(row, EVENT_FIRST_ENTRY_COL).upper() == "TRUE",
        )


def find_duplicate_event(rows: list[list[str]], event: LogEventRequest) -> StoredEvent | None:
    """Existing non-first-entry row for the same date, street and door."""
    street = event.street_name.strip().casefold()
    door = event.door_number.strip()
    for _, row in data_rows(rows):
        stored = StoredEvent.from_row(row)
        if stored.is_first_entry:
            continue
        if stored.street_name.casefold() != street or stored.door_number != door:
            continue
        if same_date(event.date, stored.date):
            return stored
    return None


def has_timestamp(rows: list[list[str]], timestamp: str) -> bool:
    """True if some row already stores exactly this timestamp (a replayed create)."""
    timestamp = timestamp.strip()
    return any(cell(row, EVENT_TIMESTAMP_COL) == timestamp for _, row in data_rows(rows))


async def read_event_log(store: SheetStore, layout: SheetLayout) -> list[list[str]]:
    return await store.read(layout.event_range)


async def append_event(store: SheetStore, layout: SheetLayout, event: LogEventRequest) -> None:
    await store.append(layout.event_range, event_to_row(event))


async def clear_event_row(store: SheetStore, layout: SheetLayout, row_number: int) -> None:
    await store.clear(a1(layout.event_log, "A", EVENT_LAST_COL, row_number))


# =============================================================================
# Positions
# =============================================================================


def _position(row: list[str], is_default: bool) -> LastPosition:
    return LastPosition(
        user=cell(row, 0),
        street_name=cell(row, 1),
        door_number=cell(row, 2),
        is_default=is_default,
    )


async def get_last_position(
    store: SheetStore, layout: SheetLayout, user: str | None
) -> LastPosition | None:
    """The user's position row, else the last row flagged as a default.

    None when the position tab has no data rows.
    """
    rows = await store.read(a1(layout.position, "A", POSITION_LAST_COL))
    found = list(data_rows(rows))
    if not found:
        return None
    if user:
        for _, row in found:
            if cell(row, 0) == user.strip():
                return _position(row, is_default=False)
    return _position(found[-1][1], is_default=True)
