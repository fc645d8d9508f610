"""
doorlog CLI - record door visits from the command line.

Usage:
    doorlog street NAME
    doorlog door (N | next | prev)
    doorlog checkin [--groomed G] [--mood M] [--jacket J]
    doorlog visit (not-home | opened | estimate) [--offline]
    doorlog delete TIMESTAMP [--offline]
    doorlog sync [--watch]
    doorlog history [--json]
    doorlog status [--json] [--check]
    doorlog rejected [--requeue]
"""

import argparse
import asyncio
import json
import logging
import re
import sys

from doorlog import DoorLog
from doorlog.logging_config import setup_logging
from doorlog.protocols import ValidationError
from doorlog.types import VALID_STATUS_VALUES

logger = logging.getLogger(__name__)


def validate_input(value: str, field_name: str, max_length: int = 200) -> str:
    """Validate and sanitize CLI inputs."""
    if len(value) > max_length:
        raise ValueError(f"{field_name} too long (max {max_length} characters)")
    # Remove null bytes and control characters
    return re.sub(r"[\x00-\x1f\x7f]", "", value)


def print_notices(notices) -> None:
    for notice in notices:
        stream = sys.stderr if notice.level == "error" else sys.stdout
        prefix = {"info": "✓", "warning": "!", "error": "✗"}.get(notice.level, "-")
        print(f"{prefix} {notice.message}", file=stream)


async def cmd_visit(args, d: DoorLog) -> int:
    notices, _ = await d.start(online=not args.offline)
    event, notice = await d.record_visit(args.status)
    print_notices(notices + [notice])
    if event is not None:
        print(f"  timestamp: {event.timestamp}")
    return 0 if event is not None else 1


async def cmd_delete(args, d: DoorLog) -> int:
    notices, _ = await d.start(online=not args.offline)
    notice = await d.delete_visit(validate_input(args.timestamp, "timestamp", 64))
    print_notices(notices + [notice])
    return 1 if notice.level == "error" else 0


async def cmd_sync(args, d: DoorLog) -> int:
    notices, _ = await d.start(online=True)
    result, sync_notices = await d.sync()
    print_notices(notices + sync_notices)
    for error in result.errors:
        print(f"  {error}", file=sys.stderr)
    print(f"Pending: {result.remaining}")
    if args.watch:
        print("Watching the queue, Ctrl-C to stop")
        await d.run_sync(asyncio.Event())
    return 0 if result.success else 1


async def cmd_history(args, d: DoorLog) -> int:
    items = d.history.items()
    if args.json:
        print(json.dumps([e.to_dict() for e in items], indent=2))
        return 0
    if not items:
        print("Nothing logged today.")
        return 0
    pending = {e.timestamp for e in d.queue.entries()}
    for e in items:
        marker = "*" if e.timestamp in pending else " "
        kind = "first entry" if e.is_first_entry else e.status.label
        print(f"{marker} {e.timestamp}  {e.door_number}, {e.street_name}. {kind}")
    if pending:
        print("(* = not yet synced)")
    return 0


async def cmd_status(args, d: DoorLog) -> int:
    status = d.status()
    if args.check:
        status["reachable"] = await d.check_server()
    if args.json:
        print(json.dumps(status, indent=2, default=str))
        return 0
    print(f"User:     {status['user']}")
    print(f"Address:  {status['door']}, {status['street'] or '(no street set)'}")
    server = "configured" if status["configured"] else "not configured"
    if status.get("reachable") is not None:
        server += ", reachable" if status["reachable"] else ", unreachable"
    print(f"Server:   {server}")
    print(f"Pending:  {status['pending']}")
    print(f"Rejected: {status['rejected']}")
    print(f"Today:    {status['logged_today']} visit(s)")
    return 0


async def cmd_rejected(args, d: DoorLog) -> int:
    if args.requeue:
        count = d.queue.requeue_rejected()
        print(f"Re-queued {count} rejected change(s)")
        return 0
    rejected = d.queue.rejected()
    if not rejected:
        print("No rejected changes.")
    for entry in rejected:
        print(f"{entry.op.value:6} {entry.timestamp}  {entry.last_error}")
    return 0


def cmd_street(args, d: DoorLog) -> int:
    print(d.set_street(validate_input(args.name, "street name")))
    return 0


def cmd_door(args, d: DoorLog) -> int:
    if args.number == "next":
        print(d.next_door())
    elif args.number in ("prev", "previous"):
        print(d.previous_door())
    else:
        print(d.set_door(validate_input(args.number, "door number", 10)))
    return 0


def cmd_checkin(args, d: DoorLog) -> int:
    answers = d.check_in(
        groomed=validate_input(args.groomed or "", "groomed"),
        mood=validate_input(args.mood or "", "mood"),
        jacket=validate_input(args.jacket or "", "jacket"),
    )
    print(json.dumps(answers))
    return 0


ASYNC_COMMANDS = {
    "visit": cmd_visit,
    "delete": cmd_delete,
    "sync": cmd_sync,
    "history": cmd_history,
    "status": cmd_status,
    "rejected": cmd_rejected,
}

SYNC_COMMANDS = {
    "street": cmd_street,
    "door": cmd_door,
    "checkin": cmd_checkin,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="doorlog",
        description="Door-to-door visit logging that keeps working offline",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Log sync activity")

    subparsers = parser.add_subparsers(dest="command", required=True)

    p_street = subparsers.add_parser("street", help="Set the current street")
    p_street.add_argument("name")

    p_door = subparsers.add_parser("door", help="Set the current door number")
    p_door.add_argument("number", help="A number, 'next' or 'prev'")

    p_checkin = subparsers.add_parser("checkin", help="Record today's check-in")
    p_checkin.add_argument("--groomed")
    p_checkin.add_argument("--mood")
    p_checkin.add_argument("--jacket")

    p_visit = subparsers.add_parser("visit", help="Log the current door")
    p_visit.add_argument("status", choices=sorted(VALID_STATUS_VALUES))
    p_visit.add_argument("--offline", action="store_true", help="Queue without sending")

    p_delete = subparsers.add_parser("delete", help="Delete a logged visit")
    p_delete.add_argument("timestamp")
    p_delete.add_argument("--offline", action="store_true", help="Queue without sending")

    p_sync = subparsers.add_parser("sync", help="Send queued changes now")
    p_sync.add_argument("--watch", action="store_true", help="Keep retrying until interrupted")

    p_history = subparsers.add_parser("history", help="Show today's log")
    p_history.add_argument("--json", "-j", action="store_true")

    p_status = subparsers.add_parser("status", help="Show queue and address state")
    p_status.add_argument("--json", "-j", action="store_true")
    p_status.add_argument("--check", action="store_true", help="Ping the server")

    p_rejected = subparsers.add_parser("rejected", help="Show changes the server refused")
    p_rejected.add_argument("--requeue", action="store_true", help="Queue them again")

    return parser


async def _run_async(handler, args) -> int:
    d = DoorLog()
    try:
        return await handler(args, d)
    finally:
        await d.aclose()


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    setup_logging(args.verbose)

    try:
        if args.command in SYNC_COMMANDS:
            return SYNC_COMMANDS[args.command](args, DoorLog())
        return asyncio.run(_run_async(ASYNC_COMMANDS[args.command], args))
    except KeyboardInterrupt:
        print("Stopped")
        return 0
    except (ValidationError, ValueError) as e:
        logger.error(f"Input validation error: {e}")
        print(f"✗ {e}", file=sys.stderr)
        return 1
    except Exception as e:
        logger.error(f"Command failed: {e}", exc_info=args.verbose)
        print(f"✗ {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
