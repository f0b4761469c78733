"""
Structured JSON logging for lifecycle observability.

Provides structured logging with trace IDs for correlating an HTTP request
or CLI run with the archive/restore/audit log lines it produced, plus a
context manager that times lifecycle operations.
"""

import json
import logging
import sys
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime
from typing import Any

# Context variables for trace correlation
trace_id_var: ContextVar[str | None] = ContextVar("trace_id", default=None)
operation_var: ContextVar[str | None] = ContextVar("operation", default=None)

# Extra record attributes copied into the JSON payload when present
EXTRA_FIELDS = (
    "event",
    "duration_ms",
    "action_type",
    "target_table",
    "target_id",
    "user_type",
    "user_id",
    "items_processed",
    "items_archived",
    "items_skipped",
    "dry_run",
    "error_code",
)


# -----------------------------------------------------------------------------
# JSON Formatter
# -----------------------------------------------------------------------------


class JSONFormatter(logging.Formatter):
    """
    Format log records as single-line JSON for the log collector.

    Output format:
    {"timestamp": "...", "level": "INFO", "message": "...", "trace_id": "...", ...}
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        trace_id = trace_id_var.get()
        if trace_id:
            log_data["trace_id"] = trace_id

        operation = operation_var.get()
        if operation:
            log_data["operation"] = operation

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key in EXTRA_FIELDS:
            if hasattr(record, key):
                log_data[key] = getattr(record, key)

        return json.dumps(log_data, default=str)


def configure_logging(json_format: bool = True, level: str = "INFO") -> None:
    """
    Configure logging for deployed or local runs.

    Args:
        json_format: If True, use JSON format. If False, use human-readable format.
        level: Log level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(getattr(logging, level.upper()))

    if json_format:
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s"))

    root_logger.addHandler(handler)

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy").setLevel(logging.WARNING)


# -----------------------------------------------------------------------------
# Trace context
# -----------------------------------------------------------------------------


def new_trace_id() -> str:
    return str(uuid.uuid4())


@contextmanager
def trace_context(trace_id: str | None = None):
    """
    Bind a trace id for the duration of a request or CLI command.

    Usage:
        with trace_context() as trace_id:
            ...
    """
    token = trace_id_var.set(trace_id or new_trace_id())
    try:
        yield trace_id_var.get()
    finally:
        trace_id_var.reset(token)


# -----------------------------------------------------------------------------
# Operation timing
# -----------------------------------------------------------------------------


@contextmanager
def log_operation(operation: str, **fields: Any):
    """
    Context manager for lifecycle operation logging.

    Logs start and end with duration. The yielded dict is merged into the
    completion record so callers can attach counts.

    Usage:
        with log_operation("bulk_archive_inactive", target_table="school_calendar") as metrics:
            ...
            metrics["items_archived"] = 3
    """
    token = operation_var.set(operation)
    start_time = time.time()
    logger = logging.getLogger("bulletin.lifecycle")
    metrics: dict = {}

    logger.debug(f"Operation {operation} started", extra={"event": "operation_start", **fields})

    try:
        yield metrics
        duration_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"Operation {operation} completed",
            extra={"event": "operation_complete", "duration_ms": duration_ms, **fields, **metrics},
        )
    except Exception as e:
        duration_ms = int((time.time() - start_time) * 1000)
        logger.warning(
            f"Operation {operation} failed: {e}",
            extra={
                "event": "operation_failed",
                "duration_ms": duration_ms,
                "error_code": getattr(e, "code", type(e).__name__),
                **fields,
            },
        )
        raise
    finally:
        operation_var.reset(token)
