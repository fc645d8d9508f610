"""Logging helpers for doorlog.

Structured one-line records for queue and sync activity, so a field
device's log can be grepped for what happened to a given timestamp.
"""

import logging

logger = logging.getLogger("doorlog")


def setup_logging(verbose: bool = False) -> None:
    """Configure root logging for command-line use."""
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def log_enqueue(op: str, timestamp: str, reason: str, pending: int) -> None:
    """Log an entry being added to the local queue."""
    logger.info(f"QUEUE | {op} | {timestamp} | reason={reason} | pending={pending}")


def log_drain(result, duration_s: float) -> None:
    """Log the outcome of one drain cycle."""
    level = logging.WARNING if result.aborted else logging.INFO
    logger.log(
        level,
        f"DRAIN | pushed={result.pushed} existing={result.confirmed_existing} "
        f"rejected={result.rejected} remaining={result.remaining} "
        f"aborted={result.aborted} | {duration_s:.2f}s",
    )
