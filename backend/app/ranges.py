"""A1-notation helpers for spreadsheet ranges.

Pure functions; nothing here talks to the network.
"""

import re

_CELL_RE = re.compile(r"^([A-Z]+)(\d*)$")


def quote_sheet(sheet: str) -> str:
    """Quote a tab name when A1 notation requires it."""
    if re.fullmatch(r"[A-Za-z0-9_]+", sheet):
        return sheet
    return "'" + sheet.replace("'", "''") + "'"


def column_letter(index: int) -> str:
    """0-based column index to its letter (0 -> A, 26 -> AA)."""
    if index < 0:
        raise ValueError(f"Column index must be non-negative: {index}")
    letters = ""
    index += 1
    while index:
        index, rem = divmod(index - 1, 26)
        letters = chr(ord("A") + rem) + letters
    return letters


def column_index(letters: str) -> int:
    """Column letter(s) to 0-based index (A -> 0)."""
    if not letters or not letters.isalpha():
        raise ValueError(f"Invalid column: {letters!r}")
    index = 0
    for ch in letters.upper():
        index = index * 26 + (ord(ch) - ord("A") + 1)
    return index - 1


def a1(sheet: str, start_col: str, end_col: str | None = None, row: int | None = None) -> str:
    """Build a range such as ``'Daily Stats'!I5:K5`` or ``Sheet1!A:N``."""
    start = f"{start_col}{row}" if row is not None else start_col
    if end_col is None:
        return f"{quote_sheet(sheet)}!{start}"
    end = f"{end_col}{row}" if row is not None else end_col
    return f"{quote_sheet(sheet)}!{start}:{end}"


def parse_a1(range_: str) -> tuple[str, int, int | None, int, int | None]:
    """Split a range into ``(sheet, start_col, start_row, end_col, end_row)``.

    Columns are 0-based indices, rows 1-based or None for whole columns.
    A single cell yields the same start and end.
    """
    if "!" not in range_:
        raise ValueError(f"Range has no sheet: {range_!r}")
    sheet, _, cells = range_.rpartition("!")
    if sheet.startswith("'") and sheet.endswith("'"):
        sheet = sheet[1:-1].replace("''", "'")
    start, _, end = cells.partition(":")
    end = end or start
    parsed = []
    for cell in (start, end):
        match = _CELL_RE.match(cell.upper())
        if not match:
            raise ValueError(f"Invalid cell reference: {cell!r}")
        letters, digits = match.groups()
        parsed.append((column_index(letters), int(digits) if digits else None))
    (start_col, start_row), (end_col, end_row) = parsed
    return sheet, start_col, start_row, end_col, end_row
