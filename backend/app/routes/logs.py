"""Event log routes: add, delete, and last known position."""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from ..aggregation import AggregationUpdater
from ..database import (
    EVENT_LAST_COL,
    EVENT_TIMESTAMP_COL,
    Layout,
    StoredEvent,
    append_event,
    clear_event_row,
    find_duplicate_event,
    get_last_position,
    has_timestamp,
    read_event_log,
)
from ..errors import NotFoundInRemote, RemoteStoreError
from ..logging_config import get_logger, log_remote_write
from ..models import (
    DeleteLogRequest,
    DeleteLogResponse,
    LastLogResponse,
    LogEventRequest,
    LogResponse,
)
from ..rate_limit import limiter, write_limit
from ..resolver import RowResolver
from ..sheets import Store

logger = get_logger("doorlog.logs")
router = APIRouter(tags=["logs"])


def _error(status_code: int, message: str, **extra) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message, **extra})


@router.post("/log", response_model=LogResponse)
@limiter.limit(write_limit)
async def add_log(request: Request, event: LogEventRequest, store: Store, layout: Layout):
    """
    Append one event and fold it into the derived tables.

    - 409 when the log already holds the same door and street for that date
      (first entries excepted) or the exact same timestamp
    - 500 when the event row cannot be written; nothing else is attempted
    - aggregate steps that fail after the append are reported, not raised
    """
    label = f"{event.door_number} {event.street_name} @ {event.timestamp}"
    logger.info(f"LOG | {event.user} | {label} | {event.status}")

    try:
        rows = await read_event_log(store, layout)
    except RemoteStoreError as e:
        logger.error(f"Could not read event log for {label}: {e}")
        return _error(500, "Failed to read event log")

    if has_timestamp(rows, event.timestamp):
        return _error(409, "Duplicate visit", existingTimestamp=event.timestamp)
    if not event.is_first_entry:
        existing = find_duplicate_event(rows, event)
        if existing is not None:
            logger.info(f"Duplicate rejected: {label} matches {existing.timestamp}")
            return _error(
                409,
                "Duplicate visit",
                existingStatus=existing.status,
                existingTimestamp=existing.timestamp,
            )

    try:
        await append_event(store, layout, event)
    except RemoteStoreError as e:
        log_remote_write("append", f"{layout.event_log} {label}", False, str(e))
        return _error(500, "Failed to add log")
    log_remote_write("append", f"{layout.event_log} {label}", True)

    report = await AggregationUpdater(store, layout).apply(event)
    return LogResponse(aggregation=report.to_model())


@router.post("/delete-log", response_model=DeleteLogResponse)
@limiter.limit(write_limit)
async def delete_log(request: Request, body: DeleteLogRequest, store: Store, layout: Layout):
    """Clear the event row matching a timestamp and undo its bucket count."""
    selector = body.timestamp_to_delete
    logger.info(f"DELETE | {selector}")

    try:
        found = await RowResolver(store).timestamp(
            layout.event_log, selector, EVENT_TIMESTAMP_COL, EVENT_LAST_COL
        )
    except NotFoundInRemote:
        logger.info(f"No event row for {selector}")
        return _error(404, "Log not found")
    except RemoteStoreError as e:
        logger.error(f"Could not read event log for delete {selector}: {e}")
        return _error(500, "Failed to read event log")

    stored = StoredEvent.from_row(found.values)
    try:
        await clear_event_row(store, layout, found.number)
    except RemoteStoreError as e:
        log_remote_write("clear", f"{layout.event_log} row {found.number}", False, str(e))
        return _error(500, "Failed to delete log")
    log_remote_write("clear", f"{layout.event_log} row {found.number}", True, f"matched by {found.tier}")

    report = await AggregationUpdater(store, layout).revert(stored)
    return DeleteLogResponse(matched_by=found.tier, aggregation=report.to_model())


@router.get("/last-log", response_model=LastLogResponse)
async def last_log(store: Store, layout: Layout, user: str | None = None):
    """Last known position for ``user``, or the most recent one as a default."""
    try:
        position = await get_last_position(store, layout, user)
    except RemoteStoreError as e:
        logger.error(f"Could not read positions: {e}")
        return _error(500, "Failed to read last log")
    if position is None:
        return _error(404, "No logs found")
    return LastLogResponse(last_log=position)
