"""Row resolution in an id-less spreadsheet.

Rows have no stable id, so every mutation starts by scanning a range and
picking a row by its visible cells. Row numbers returned here are 1-based
sheet rows, valid only for the request that resolved them; other writers
can insert or clear rows between calls.

Timestamp matching is tiered. Tiers are pure ``(selector, cell) -> bool``
functions tried in order over the whole range; the first tier that matches
any row wins.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timezone
from typing import Callable

from dateutil import parser as date_parser

from .errors import NotFoundInRemote
from .ranges import a1
from .sheets import SheetStore

HEADER_ROWS = 1


def cell(row: list[str], index: int) -> str:
    """Cell text at ``index``, or "" when the row is short."""
    if index < len(row) and row[index] is not None:
        return str(row[index]).strip()
    return ""


def is_blank(row: list[str]) -> bool:
    return not any(str(value).strip() for value in row)


def data_rows(rows: list[list[str]]):
    """Yield ``(row_number, row)`` for non-blank rows below the header."""
    for offset, row in enumerate(rows[HEADER_ROWS:], start=HEADER_ROWS + 1):
        if not is_blank(row):
            yield offset, row


# =============================================================================
# Parsing
# =============================================================================


def parse_instant(value: str) -> datetime | None:
    """Parse a date/time string to an aware datetime; naive values are UTC."""
    if not value or not value.strip():
        return None
    try:
        parsed = date_parser.parse(value.strip())
    except (ValueError, OverflowError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_date(value: str) -> date | None:
    if not value or not value.strip():
        return None
    try:
        return date_parser.parse(value.strip()).date()
    except (ValueError, OverflowError):
        return None


def parse_time(value: str) -> time | None:
    if not value or not value.strip():
        return None
    try:
        return date_parser.parse(value.strip()).time()
    except (ValueError, OverflowError):
        return None


def same_date(a: str, b: str) -> bool:
    """Dates equal as text, or as calendar dates once parsed."""
    a, b = a.strip(), b.strip()
    if not a or not b:
        return False
    if a == b:
        return True
    parsed_a, parsed_b = parse_date(a), parse_date(b)
    return parsed_a is not None and parsed_a == parsed_b


def same_interval(a: str, b: str) -> bool:
    """Interval starts equal as text, or as clock times ("10:00" == "10:00:00")."""
    a, b = a.strip(), b.strip()
    if not a or not b:
        return False
    if a == b:
        return True
    parsed_a, parsed_b = parse_time(a), parse_time(b)
    return parsed_a is not None and parsed_a == parsed_b


# =============================================================================
# Timestamp tiers
# =============================================================================


def match_exact(selector: str, stored: str) -> bool:
    return bool(stored) and selector == stored


def match_same_instant(selector: str, stored: str) -> bool:
    if not stored:
        return False
    left, right = parse_instant(selector), parse_instant(stored)
    return left is not None and right is not None and left == right


def match_contains(selector: str, stored: str) -> bool:
    if not stored or not selector:
        return False
    return selector in stored or stored in selector


Matcher = Callable[[str, str], bool]

TIMESTAMP_TIERS: list[tuple[str, Matcher]] = [
    ("exact", match_exact),
    ("same_instant", match_same_instant),
    ("contains", match_contains),
]


def find_timestamp_row(
    rows: list[list[str]], selector: str, column: int
) -> tuple[int, str] | None:
    """First row matched by the earliest tier, as ``(row_number, tier)``."""
    selector = selector.strip()
    for tier, matcher in TIMESTAMP_TIERS:
        for number, row in data_rows(rows):
            if matcher(selector, cell(row, column)):
                return number, tier
    return None


# =============================================================================
# Key selectors
# =============================================================================


def find_bucket_row(
    rows: list[list[str]], day: str, interval: str, date_col: int = 0, interval_col: int = 2
) -> int | None:
    for number, row in data_rows(rows):
        if same_date(day, cell(row, date_col)) and same_interval(interval, cell(row, interval_col)):
            return number
    return None


def find_key_row(
    rows: list[list[str]], key: str, column: int = 0, case_insensitive: bool = False
) -> int | None:
    key = key.strip()
    if not key:
        return None
    if case_insensitive:
        key = key.casefold()
    for number, row in data_rows(rows):
        value = cell(row, column)
        if case_insensitive:
            value = value.casefold()
        if value == key:
            return number
    return None


def find_first_gap(rows: list[list[str]], column: int = 0) -> int:
    """First data row whose key cell is empty, else the row after the last."""
    for offset, row in enumerate(rows[HEADER_ROWS:], start=HEADER_ROWS + 1):
        if not cell(row, column):
            return offset
    return max(len(rows), HEADER_ROWS) + 1


# =============================================================================
# Store-backed resolver
# =============================================================================


@dataclass
class ResolvedRow:
    """A row located in one read; ``tier`` is set for timestamp matches."""

    number: int
    values: list[str] = field(default_factory=list)
    tier: str | None = None


class RowResolver:
    """Reads a tab and resolves a selector against it, one read per call."""

    def __init__(self, store: SheetStore):
        self.store = store

    async def _rows(self, sheet: str, last_col: str) -> list[list[str]]:
        return await self.store.read(a1(sheet, "A", last_col))

    async def bucket(self, sheet: str, day: str, interval: str) -> ResolvedRow | None:
        rows = await self._rows(sheet, "L")
        number = find_bucket_row(rows, day, interval)
        return ResolvedRow(number, rows[number - 1]) if number else None

    async def timestamp(self, sheet: str, selector: str, column: int, last_col: str) -> ResolvedRow:
        """Resolve an event row by timestamp; raises NotFoundInRemote."""
        rows = await self._rows(sheet, last_col)
        found = find_timestamp_row(rows, selector, column)
        if found is None:
            raise NotFoundInRemote(f"No row matches timestamp {selector!r}")
        number, tier = found
        return ResolvedRow(number, rows[number - 1], tier)

    async def key(
        self, sheet: str, key: str, last_col: str, case_insensitive: bool = False
    ) -> ResolvedRow | None:
        rows = await self._rows(sheet, last_col)
        number = find_key_row(rows, key, case_insensitive=case_insensitive)
        return ResolvedRow(number, rows[number - 1]) if number else None

    async def first_gap(self, sheet: str, last_col: str) -> int:
        rows = await self._rows(sheet, last_col)
        return find_first_gap(rows)
