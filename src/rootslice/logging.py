"""
Logging setup for rootslice.

All log output goes to stderr under the ``rootslice`` logger hierarchy, so
stdout stays free for plan listings and reports. Each call may carry keyword
context (table names, row counts, timings) that is rendered either inline for
humans or as a JSON object for log shippers.
"""

import json
import logging
import sys
import time
from contextlib import contextmanager
from typing import Any

_loggers: dict[str, logging.Logger] = {}

ROOT_LOGGER_NAME = "rootslice"


class StructuredFormatter(logging.Formatter):
    """
    One JSON object per record.

    Fields: timestamp, level, logger, message, plus ``context`` and
    ``exception`` when present.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        context = getattr(record, "context", None)
        if context:
            log_data["context"] = context

        return json.dumps(log_data, default=str)


class HumanReadableFormatter(logging.Formatter):
    """Renders ``[TIMESTAMP] LEVEL: message (key=value, ...)``."""

    def format(self, record: logging.LogRecord) -> str:
        timestamp = self.formatTime(record, self.datefmt)
        message = record.getMessage()

        context_str = ""
        context = getattr(record, "context", None)
        if context:
            context_str = " (" + ", ".join(f"{k}={v}" for k, v in context.items()) + ")"

        exc_str = ""
        if record.exc_info:
            exc_str = "\n" + self.formatException(record.exc_info)

        return f"[{timestamp}] {record.levelname}: {message}{context_str}{exc_str}"


def setup_logging(
    verbose: bool = False,
    no_progress: bool = False,
    structured: bool = False,
) -> None:
    """
    Configure the ``rootslice`` logger.

    Args:
        verbose: Emit DEBUG records (edge discovery, predicates, queries)
        no_progress: Only emit warnings and errors
        structured: Emit JSON lines instead of human-readable text
    """
    if verbose:
        level = logging.DEBUG
    elif no_progress:
        level = logging.WARNING
    else:
        level = logging.INFO

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)

    formatter: logging.Formatter
    if structured:
        formatter = StructuredFormatter(datefmt="%Y-%m-%d %H:%M:%S")
    else:
        formatter = HumanReadableFormatter(datefmt="%Y-%m-%d %H:%M:%S")
    handler.setFormatter(formatter)

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(logging.DEBUG)
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.propagate = False


def get_logger(name: str) -> "ContextLogger":
    """
    Get a context-aware logger for a module.

    Args:
        name: Usually ``__name__`` of the calling module

    Returns:
        ContextLogger attached to ``rootslice.<name>``
    """
    if name not in _loggers:
        if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
            _loggers[name] = logging.getLogger(name)
        else:
            _loggers[name] = logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")

    return ContextLogger(_loggers[name])


class ContextLogger:
    """
    Thin wrapper over ``logging.Logger`` that accepts keyword context.

    Example:
        logger = get_logger(__name__)
        logger.info("Staged table", table="orders", rows=12)
    """

    def __init__(self, logger: logging.Logger):
        self._logger = logger
        self._context: dict[str, Any] = {}

    @property
    def name(self) -> str:
        return self._logger.name

    def _log(
        self, level: int, msg: str, context: dict[str, Any] | None = None, exc_info: Any = None
    ):
        merged_context = {**self._context}
        if context:
            merged_context.update(context)

        extra = {"context": merged_context} if merged_context else {}
        self._logger.log(level, msg, extra=extra, exc_info=exc_info)

    def debug(self, msg: str, **context):
        self._log(logging.DEBUG, msg, context)

    def info(self, msg: str, **context):
        self._log(logging.INFO, msg, context)

    def warning(self, msg: str, **context):
        self._log(logging.WARNING, msg, context)

    def error(self, msg: str, exc_info: Any = None, **context):
        self._log(logging.ERROR, msg, context, exc_info=exc_info)

    def with_context(self, **context) -> "ContextLogger":
        """
        Return a logger that adds ``context`` to every record.

        Example:
            table_logger = logger.with_context(table="order_items")
            table_logger.info("Extracting")
        """
        new_logger = ContextLogger(self._logger)
        new_logger._context = {**self._context, **context}
        return new_logger

    @contextmanager
    def timed_operation(self, operation: str, **context):
        """
        Log the start, end and duration of a block.

        Failures are logged with their duration and re-raised.

        Example:
            with logger.timed_operation("discovery", root="orders"):
                graph = builder.build("orders")
        """
        start_time = time.perf_counter()
        self.debug(f"Starting {operation}", **context)

        try:
            yield
        except Exception as e:
            elapsed = time.perf_counter() - start_time
            self.error(
                f"Failed {operation}",
                duration_ms=int(elapsed * 1000),
                error=str(e),
                **context,
            )
            raise
        elapsed = time.perf_counter() - start_time
        self.info(f"Completed {operation}", duration_ms=int(elapsed * 1000), **context)


def log_run_start(logger: ContextLogger, database: str, root_table: str, root_id: object):
    """Log the beginning of an extraction run."""
    logger.info(
        "Starting extraction",
        database=database,
        root_table=root_table,
        root_id=root_id,
    )


def log_run_complete(logger: ContextLogger, total_rows: int, table_count: int, duration_ms: int):
    """Log the end of an extraction run with totals."""
    logger.info(
        "Extraction complete",
        total_rows=total_rows,
        table_count=table_count,
        duration_ms=duration_ms,
    )


def log_query_execution(logger: ContextLogger, query: str, params: tuple | list):
    """Log an SQL statement before it is sent to the server."""
    query_preview = query[:200] + "..." if len(query) > 200 else query
    logger.debug(
        "Executing query",
        query_preview=query_preview,
        param_count=len(params) if params else 0,
    )
