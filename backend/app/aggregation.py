"""Derived tables maintained from the event stream.

Each confirmed, non-first-entry event bumps one counter in its (date,
interval) bucket, moves the user's position pointer, and for not-home
visits adds the door to the street's registry. The three steps are
independent read-modify-write cycles with no transaction around them: a
concurrent writer can overwrite an increment between our read and our
write, and a replayed event is counted again. Neither is detected.
"""

from dataclasses import asdict, dataclass

from .database import (
    BUCKET_COUNT_COLS,
    BUCKET_LAST_COL,
    COUNT_ORDER,
    NOT_HOME_LAST_COL,
    POSITION_LAST_COL,
    SheetLayout,
    StoredEvent,
)
from .errors import RemoteStoreError
from .logging_config import get_logger, log_remote_write
from .models import AggregationResult, LogEventRequest
from .ranges import a1
from .resolver import RowResolver, cell
from .sheets import SheetStore

logger = get_logger("doorlog.aggregation")

OK = "ok"
SKIPPED = "skipped"


@dataclass
class AggregationReport:
    bucket: str = SKIPPED
    position: str = SKIPPED
    not_home: str = SKIPPED

    def to_model(self) -> AggregationResult:
        return AggregationResult(**asdict(self))


def parse_count(value: str) -> int:
    """Counter cell to int; empty or non-numeric cells count as 0."""
    try:
        return max(int(float(value)), 0)
    except (TypeError, ValueError):
        return 0


def split_doors(value: str) -> list[str]:
    return [door.strip() for door in value.split(",") if door.strip()]


class AggregationUpdater:
    """Applies and reverts events against the bucket, position and not-home tabs."""

    def __init__(self, store: SheetStore, layout: SheetLayout):
        self.store = store
        self.layout = layout
        self.resolver = RowResolver(store)

    async def apply(self, event: LogEventRequest) -> AggregationReport:
        report = AggregationReport()
        if event.is_first_entry:
            return report
        report.bucket = await self._step("bucket", self._increment_bucket, event)
        report.position = await self._step("position", self._update_position, event)
        if event.status == "not-home":
            report.not_home = await self._step("not_home", self._add_not_home, event)
        return report

    async def revert(self, event: StoredEvent) -> AggregationReport:
        """Undo the bucket increment for a deleted event; other tabs are left alone."""
        report = AggregationReport()
        if event.is_first_entry:
            return report
        report.bucket = await self._step("bucket", self._decrement_bucket, event)
        return report

    async def _step(self, name: str, func, event) -> str:
        try:
            return await func(event)
        except RemoteStoreError as e:
            log_remote_write(name, event.timestamp, False, str(e))
            return f"failed: {e}"

    # === Bucket ===

    def _counts_range(self, row_number: int) -> str:
        start, end = BUCKET_COUNT_COLS
        return a1(self.layout.bucket, start, end, row_number)

    async def _read_counts(self, row_number: int) -> list[int]:
        values = await self.store.read(self._counts_range(row_number))
        row = values[0] if values else []
        return [parse_count(cell(row, i)) for i in range(len(COUNT_ORDER))]

    async def _increment_bucket(self, event: LogEventRequest) -> str:
        index = COUNT_ORDER.index(event.status)
        found = await self.resolver.bucket(self.layout.bucket, event.date, event.interval)
        if found is None:
            counts = [0, 0, 0]
            counts[index] = 1
            await self.store.append(
                a1(self.layout.bucket, "A", BUCKET_LAST_COL),
                [
                    event.date,
                    event.day_of_week,
                    event.interval,
                    event.groomed,
                    event.jacket,
                    event.mood,
                    event.weather.condition,
                    "" if event.weather.temp is None else event.weather.temp,
                    *counts,
                    event.user,
                ],
            )
            log_remote_write("append", f"{self.layout.bucket} {event.date} {event.interval}", True)
            return OK

        # Re-read just before writing to keep the race window small
        counts = await self._read_counts(found.number)
        counts[index] += 1
        await self.store.update(self._counts_range(found.number), [counts])
        log_remote_write(
            "update", f"{self.layout.bucket} row {found.number}", True, f"{event.status} -> {counts[index]}"
        )
        return OK

    async def _decrement_bucket(self, event: StoredEvent) -> str:
        if event.status not in COUNT_ORDER:
            return f"{SKIPPED}: unknown status"
        index = COUNT_ORDER.index(event.status)
        found = await self.resolver.bucket(self.layout.bucket, event.date, event.interval)
        if found is None:
            return f"{SKIPPED}: no bucket"
        counts = await self._read_counts(found.number)
        if counts[index] <= 0:
            logger.warning(
                f"Bucket row {found.number} {event.status} already zero; not decrementing"
            )
            return f"{SKIPPED}: already zero"
        counts[index] -= 1
        await self.store.update(self._counts_range(found.number), [counts])
        log_remote_write(
            "update", f"{self.layout.bucket} row {found.number}", True, f"{event.status} -> {counts[index]}"
        )
        return OK

    # === Position ===

    async def _update_position(self, event: LogEventRequest) -> str:
        found = await self.resolver.key(self.layout.position, event.user, POSITION_LAST_COL)
        if found is None:
            await self.store.append(
                a1(self.layout.position, "A", POSITION_LAST_COL),
                [event.user, event.street_name, event.door_number],
            )
            log_remote_write("append", f"{self.layout.position} {event.user}", True)
        else:
            await self.store.update(
                a1(self.layout.position, "B", POSITION_LAST_COL, found.number),
                [[event.street_name, event.door_number]],
            )
            log_remote_write("update", f"{self.layout.position} row {found.number}", True)
        return OK

    # === Not-home registry ===

    async def _add_not_home(self, event: LogEventRequest) -> str:
        street = event.street_name.strip()
        found = await self.resolver.key(
            self.layout.not_home, street, NOT_HOME_LAST_COL, case_insensitive=True
        )
        if found is None:
            gap = await self.resolver.first_gap(self.layout.not_home, NOT_HOME_LAST_COL)
            await self.store.update(
                a1(self.layout.not_home, "A", NOT_HOME_LAST_COL, gap),
                [[street, event.door_number]],
            )
            log_remote_write("update", f"{self.layout.not_home} row {gap}", True, f"new street {street}")
            return OK

        doors = split_doors(cell(found.values, 1))
        doors.append(event.door_number)
        await self.store.update(
            a1(self.layout.not_home, "B", row=found.number),
            [[", ".join(doors)]],
        )
        log_remote_write("update", f"{self.layout.not_home} row {found.number}", True, f"door {event.door_number}")
        return OK
