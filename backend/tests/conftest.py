"""Pytest configuration and fixtures."""

import os

import pytest

# Unit tests never talk to Google; the store is replaced per test.
os.environ.pop("GOOGLE_CREDENTIALS", None)
os.environ.setdefault("SPREADSHEET_ID", "test-spreadsheet")

from app.database import SheetLayout  # noqa: E402
from app.errors import RemoteStoreError  # noqa: E402
from app.main import app  # noqa: E402
from app.ranges import parse_a1  # noqa: E402
from app.rate_limit import limiter  # noqa: E402
from app.sheets import get_store  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

HEADERS = {
    "Sheet1": [
        "Date", "DayOfWeek", "Groomed", "Mood", "Jacket", "Condition", "Temp",
        "Interval", "Street", "Door", "Status", "Timestamp", "User", "FirstEntry",
    ],
    "Daily Stats": [
        "Date", "DayOfWeek", "Interval", "Groomed", "Jacket", "Mood", "Condition",
        "Temp", "NotHome", "Opened", "Estimate", "User",
    ],
    "User Positions": ["User", "Street", "Door"],
    "Not Home": ["Street", "Doors"],
}


class FakeSheets:
    """In-memory spreadsheet implementing the SheetStore port.

    Mirrors the values API closely enough for resolution tests: reads drop
    trailing empty cells and rows, appends land after the last non-blank
    row, and clears blank cells in place.
    """

    def __init__(self):
        self.tabs: dict[str, list[list[str]]] = {name: [list(h)] for name, h in HEADERS.items()}
        self.calls: list[tuple[str, str]] = []
        self.fail_on: set[str] = set()

    def _check(self, op: str, range_: str) -> None:
        self.calls.append((op, range_))
        if op in self.fail_on:
            raise RemoteStoreError(f"{op} failed", 503)

    def _tab(self, sheet: str) -> list[list[str]]:
        return self.tabs.setdefault(sheet, [])

    async def read(self, range_: str) -> list[list[str]]:
        self._check("read", range_)
        sheet, c0, r0, c1, r1 = parse_a1(range_)
        rows = self._tab(sheet)
        start = (r0 or 1) - 1
        end = r1 if r1 is not None else len(rows)
        out = []
        for row in rows[start:end]:
            values = [str(v) for v in row[c0:c1 + 1]]
            while values and values[-1] == "":
                values.pop()
            out.append(values)
        while out and not out[-1]:
            out.pop()
        return out

    async def append(self, range_: str, row: list) -> None:
        self._check("append", range_)
        sheet, c0, _, _, _ = parse_a1(range_)
        rows = self._tab(sheet)
        last = 0
        for index, existing in enumerate(rows):
            if any(str(v) != "" for v in existing):
                last = index + 1
        rows.insert(last, [""] * c0 + [str(v) for v in row])

    async def update(self, range_: str, values: list[list]) -> None:
        self._check("update", range_)
        sheet, c0, r0, _, _ = parse_a1(range_)
        self._write(sheet, c0, r0 or 1, values)

    async def clear(self, range_: str) -> None:
        self._check("clear", range_)
        sheet, c0, r0, c1, r1 = parse_a1(range_)
        rows = self._tab(sheet)
        end = r1 if r1 is not None else len(rows)
        for row in rows[(r0 or 1) - 1:end]:
            for col in range(c0, min(c1 + 1, len(row))):
                row[col] = ""

    def _write(self, sheet: str, col: int, row_number: int, values: list[list]) -> None:
        rows = self._tab(sheet)
        for offset, new in enumerate(values):
            index = row_number - 1 + offset
            while len(rows) <= index:
                rows.append([])
            row = rows[index]
            while len(row) < col + len(new):
                row.append("")
            for i, value in enumerate(new):
                row[col + i] = str(value)

    # === Test helpers ===

    def add_row(self, sheet: str, row: list) -> None:
        self._tab(sheet).append([str(v) for v in row])

    def data(self, sheet: str) -> list[list[str]]:
        return self._tab(sheet)[1:]

    def ops(self, op: str) -> list[str]:
        return [r for o, r in self.calls if o == op]


@pytest.fixture
def sheets():
    return FakeSheets()


@pytest.fixture
def layout():
    return SheetLayout()


@pytest.fixture
def client(sheets):
    """Create a test client backed by the in-memory spreadsheet."""
    app.dependency_overrides[get_store] = lambda: sheets
    limiter.reset()
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def event_payload():
    """A valid POST /log body."""
    return {
        "date": "2024-03-01",
        "dayOfWeek": "Friday",
        "groomed": "yes",
        "mood": "good",
        "jacket": "no",
        "weather": {"temp": 11.5, "condition": "Cloudy"},
        "interval": "10:00",
        "streetName": "Maple Avenue",
        "doorNumber": "12",
        "status": "opened",
        "timestamp": "2024-03-01T10:05:00.000Z",
        "user": "usr_test000001",
        "isFirstEntry": False,
    }
