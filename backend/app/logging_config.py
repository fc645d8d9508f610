"""Logging configuration for the doorlog backend."""

import logging

_configured = False


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging once per process."""
    global _configured
    if _configured:
        return
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    _configured = True


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)


_store_logger = get_logger("doorlog.store")


def log_remote_write(
    operation: str,
    target: str,
    success: bool,
    detail: str | None = None,
) -> None:
    """One line per spreadsheet mutation, success or not."""
    status = "OK" if success else "FAILED"
    message = f"{operation.upper()} | {target} | {status}"
    if detail:
        message += f" | {detail}"
    if success:
        _store_logger.info(message)
    else:
        _store_logger.warning(message)
