"""Structured JSON logging for the surveycam agent.

Provides audit-friendly logging with contextual fields for queue mutations,
upload attempts and persistence problems. Image bytes and tokens are never
logged.

Usage:
    from surveycam.logging import setup_logging, get_logger

    setup_logging("INFO")
    log = get_logger("surveycam.queue")
    log.info("photo_queued", extra={"entry_id": "1700000000000-a1b2c3d4"})
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime, timezone
from functools import lru_cache
from logging.handlers import RotatingFileHandler
from pathlib import Path

from pythonjsonlogger import jsonlogger

from surveycam import __version__


class SurveycamJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter that adds agent context to all log records."""

    def add_fields(
        self,
        log_record: dict,
        record: logging.LogRecord,
        message_dict: dict,
    ) -> None:
        """Add standard fields to every log record."""
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = self.formatTime(record)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name

        log_record["agent_version"] = __version__

        if "message" not in log_record and record.getMessage():
            log_record["message"] = record.getMessage()

    def formatTime(self, record: logging.LogRecord, datefmt: str | None = None) -> str:
        """Format time as ISO 8601."""
        dt = datetime.fromtimestamp(record.created, tz=timezone.utc)
        return dt.isoformat()


def setup_logging(
    level: str = "INFO",
    log_file: Path | None = None,
    max_bytes: int = 5_000_000,  # 5MB
    backup_count: int = 3,
) -> None:
    """Configure root logger with JSON formatting.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path for rotating file handler
        max_bytes: Max size per log file for rotation
        backup_count: Number of backup files to keep
    """
    formatter = SurveycamJsonFormatter()

    root_logger = logging.getLogger()
    root_logger.setLevel(level.upper())

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    # JSON to stderr so stdout stays free for CLI output
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=max_bytes,
            backupCount=backup_count,
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)


@lru_cache(maxsize=32)
def get_logger(name: str) -> logging.Logger:
    """Get a named logger.

    Args:
        name: Logger name (e.g., 'surveycam.queue', 'surveycam.sync')

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)


def queue_logger() -> logging.Logger:
    """Get logger for queue mutations."""
    return get_logger("surveycam.queue")


def sync_logger() -> logging.Logger:
    """Get logger for upload events."""
    return get_logger("surveycam.sync")


def store_logger() -> logging.Logger:
    """Get logger for queue persistence."""
    return get_logger("surveycam.store")


# --- Audit Event Functions ---


def log_photo_queued(
    logger: logging.Logger,
    entry_id: str,
    project_id: str,
    room_id: str | None = None,
) -> None:
    """Log a photo added to the upload queue.

    Args:
        logger: Logger instance
        entry_id: Queue entry identifier
        project_id: Owning project
        room_id: Owning room, if any
    """
    extra = {
        "event": "photo_queued",
        "entry_id": entry_id,
        "project_id": project_id,
    }
    if room_id:
        extra["room_id"] = room_id
    logger.info("Photo queued", extra=extra)


def log_status_change(
    logger: logging.Logger,
    entry_id: str,
    old_status: str,
    new_status: str,
) -> None:
    """Log a queue entry status transition."""
    logger.debug(
        "Entry status changed",
        extra={
            "event": "status_change",
            "entry_id": entry_id,
            "old_status": old_status,
            "new_status": new_status,
        },
    )


def log_upload_success(
    logger: logging.Logger,
    entry_id: str,
    update_id: str,
    duration_ms: float,
) -> None:
    """Log a successful photo upload.

    Args:
        logger: Logger instance
        entry_id: Queue entry identifier
        update_id: Remote update record the photo was attached to
        duration_ms: Wall time of the whole upload in milliseconds
    """
    logger.info(
        "Upload successful",
        extra={
            "event": "upload_success",
            "entry_id": entry_id,
            "update_id": update_id,
            "duration_ms": duration_ms,
        },
    )


def log_upload_failed(
    logger: logging.Logger,
    entry_id: str,
    error: str,
    retry_count: int,
    update_id: str | None = None,
) -> None:
    """Log a failed upload attempt.

    Args:
        logger: Logger instance
        entry_id: Queue entry identifier
        error: Error message (no sensitive data)
        retry_count: Failed attempts so far, including this one
        update_id: Remote update record created before the failure, if any
    """
    extra = {
        "event": "upload_failed",
        "entry_id": entry_id,
        "error": error,
        "retry_count": retry_count,
    }
    if update_id:
        # Update record exists on the server without its photo
        extra["orphaned_update_id"] = update_id
    logger.warning("Upload failed", extra=extra)


def log_persistence_failed(
    logger: logging.Logger,
    operation: str,
    error: str,
) -> None:
    """Log a failed read or write of the persisted queue.

    Args:
        logger: Logger instance
        operation: "load" or "save"
        error: Error message
    """
    logger.error(
        "Queue persistence failed",
        extra={
            "event": "persistence_failed",
            "operation": operation,
            "error": error,
        },
    )


def log_entry_skipped(
    logger: logging.Logger,
    index: int,
    entry_id: str | None,
    error: str,
) -> None:
    """Log a persisted queue entry dropped because it can't be parsed.

    Args:
        logger: Logger instance
        index: Position of the entry in the persisted list
        entry_id: Entry id, if the record had one
        error: Parse error message
    """
    extra = {
        "event": "entry_skipped",
        "index": index,
        "error": error,
    }
    if entry_id:
        extra["entry_id"] = entry_id
    logger.warning("Invalid queue entry skipped", extra=extra)
