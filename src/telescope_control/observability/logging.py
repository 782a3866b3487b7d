"""Structured logging for telescope-control.

Builds on Python's standard logging module with:
- Structured data support (key-value pairs in logs)
- JSON formatting option for log aggregation
- Context management for per-slot tracking

Log calls accept keyword arguments which are attached to the record as
structured data rather than interpolated into the message, so values that
come from telescope servers (names, raw bytes) cannot forge log lines:

    # SAFE - structured data is formatted separately
    logger.warning("Malformed message", slot=slot, raw=data.hex())

    # UNSAFE - device data in the message text
    logger.warning(f"Malformed message {data!r}")

Example:
    logger = get_logger(__name__)
    logger.info("Scheduler started")

    with LogContext(slot=3):
        logger.info("Client started", kind="serial")
        # ... | slot=3 kind=serial

    configure_logging(json_format=True)
"""

from __future__ import annotations

import contextvars
import json
import logging
import sys
import threading
from collections.abc import MutableMapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, cast

ROOT_LOGGER_NAME = "telescope_control"

_log_context: contextvars.ContextVar[dict[str, Any]] = contextvars.ContextVar(
    "log_context", default={}
)


# =============================================================================
# Structured Logger
# =============================================================================


class StructuredLogger(logging.Logger):
    """Logger with structured data support.

    Keyword arguments given to the level methods become structured data
    on the record, merged over any active LogContext values.

    Usage:
        logger = StructuredLogger("telescope_control.control")
        logger.info("Client connected", slot=1, name="LX200")
    """

    def debug(self, msg: object, *args: Any, **kwargs: Any) -> None:
        """Log debug message with optional structured data kwargs."""
        if self.isEnabledFor(logging.DEBUG):
            self._log_structured(logging.DEBUG, msg, args, **kwargs)

    def info(self, msg: object, *args: Any, **kwargs: Any) -> None:
        """Log info message with optional structured data kwargs."""
        if self.isEnabledFor(logging.INFO):
            self._log_structured(logging.INFO, msg, args, **kwargs)

    def warning(self, msg: object, *args: Any, **kwargs: Any) -> None:
        """Log warning message with optional structured data kwargs."""
        if self.isEnabledFor(logging.WARNING):
            self._log_structured(logging.WARNING, msg, args, **kwargs)

    def error(self, msg: object, *args: Any, **kwargs: Any) -> None:
        """Log error message with optional structured data kwargs."""
        if self.isEnabledFor(logging.ERROR):
            self._log_structured(logging.ERROR, msg, args, **kwargs)

    def critical(self, msg: object, *args: Any, **kwargs: Any) -> None:
        """Log critical message with optional structured data kwargs."""
        if self.isEnabledFor(logging.CRITICAL):
            self._log_structured(logging.CRITICAL, msg, args, **kwargs)

    def exception(self, msg: object, *args: Any, **kwargs: Any) -> None:
        """Log error message with the current exception attached."""
        kwargs.setdefault("exc_info", True)
        if self.isEnabledFor(logging.ERROR):
            self._log_structured(logging.ERROR, msg, args, **kwargs)

    def _log_structured(
        self,
        level: int,
        msg: object,
        args: tuple[Any, ...] | MutableMapping[str, Any],
        exc_info: Any = None,
        extra: dict[str, Any] | None = None,
        stack_info: bool = False,
        stacklevel: int = 1,
        **kwargs: Any,
    ) -> None:
        """Emit a record carrying context and keyword data.

        The standard ``exc_info``, ``extra``, ``stack_info`` and
        ``stacklevel`` arguments keep their usual meaning; every other
        keyword becomes structured data. Explicit keywords override
        LogContext values with the same key.

        Args:
            level: Numeric log level.
            msg: Log message, may contain % placeholders.
            args: Arguments for % formatting.
            exc_info: Exception info, True to capture the current one.
            extra: Additional LogRecord attributes.
            stack_info: Include a stack trace when True.
            stacklevel: Frames to skip when attributing the caller.
            **kwargs: Structured key-value data.
        """
        structured_data = {**_log_context.get(), **kwargs}
        if extra is None:
            extra = {}
        extra["structured_data"] = structured_data

        # Skip this helper and the public level method
        self._log(
            level,
            msg,
            args,
            exc_info=exc_info,
            extra=extra,
            stack_info=stack_info,
            stacklevel=stacklevel + 2,
        )


# =============================================================================
# Formatters
# =============================================================================


class StructuredFormatter(logging.Formatter):
    """Human-readable formatter with structured data.

    Format: timestamp - name - level - message | key=value key=value
    """

    def __init__(
        self,
        fmt: str | None = None,
        datefmt: str | None = None,
        include_structured: bool = True,
    ) -> None:
        """Initialize the structured formatter.

        Args:
            fmt: Format string using LogRecord attributes. Defaults to
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'.
            datefmt: Date/time format for %(asctime)s.
            include_structured: Append ' | key=value ...' when True.
        """
        if fmt is None:
            fmt = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        super().__init__(fmt, datefmt)
        self.include_structured = include_structured

    def format(self, record: logging.LogRecord) -> str:
        """Format the record and append its structured data, if any."""
        base = super().format(record)

        if not self.include_structured:
            return base

        structured = getattr(record, "structured_data", {})
        if not structured:
            return base

        pairs = " ".join(f"{k}={_format_value(v)}" for k, v in structured.items())
        return f"{base} | {pairs}"


class JSONFormatter(logging.Formatter):
    """JSON formatter for log aggregation systems.

    Outputs each record as one JSON line with timestamp, level, logger,
    message and all structured data as top-level keys.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as a single-line JSON object.

        Args:
            record: The LogRecord to format. Its ``structured_data``
                attribute (if present) is merged at top level.

        Returns:
            JSON string without trailing newline. Non-serializable
            values are converted with str().

        Example:
            >>> output = JSONFormatter().format(record)
            >>> json.loads(output)["slot"]
            3
        """
        log_dict: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        log_dict.update(getattr(record, "structured_data", {}))

        if record.exc_info:
            log_dict["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_dict, default=str)


def _format_value(value: Any) -> str:
    """Format a value for key=value output.

    None becomes 'null', strings with spaces are quoted, dicts and lists
    are JSON, everything else uses str().

    Example:
        >>> _format_value("LX200 Classic")
        '"LX200 Classic"'
        >>> _format_value({"ra": 1.5})
        '{"ra": 1.5}'
    """
    if value is None:
        return "null"
    if isinstance(value, str):
        if " " in value:
            return f'"{value}"'
        return value
    if isinstance(value, dict | list):
        return json.dumps(value, default=str)
    return str(value)


# =============================================================================
# Context Management
# =============================================================================


@dataclass
class LogContext:
    """Context manager adding key-value pairs to every log record.

    Supports nesting; inner values override outer ones.

    Usage:
        with LogContext(slot=2):
            logger.info("Starting")  # includes slot=2
            with LogContext(kind="remote"):
                logger.info("Connecting")  # includes slot and kind
    """

    _kwargs: dict[str, Any] = field(default_factory=dict, init=False, repr=True)
    _token: contextvars.Token[dict[str, Any]] | None = field(
        default=None, init=False, repr=False
    )

    def __init__(self, **kwargs: Any) -> None:
        """Store the key-value pairs to activate on enter."""
        self._kwargs = kwargs
        self._token = None

    def __enter__(self) -> LogContext:
        """Merge this context's values into the active logging context."""
        current = _log_context.get()
        self._token = _log_context.set({**current, **self._kwargs})
        return self

    def __exit__(self, *args: Any) -> None:
        """Restore the previous logging context. Exceptions propagate."""
        if self._token is not None:
            _log_context.reset(self._token)
            self._token = None


# =============================================================================
# Configuration
# =============================================================================

_configured = False
_config_lock = threading.Lock()


def configure_logging(
    level: int | str = logging.INFO,
    json_format: bool = False,
    stream: Any = None,
    include_structured: bool = True,
    force: bool = False,
) -> None:
    """Configure the telescope-control logging system.

    Installs one stream handler on the ``telescope_control`` logger and
    makes StructuredLogger the logger class. Idempotent unless
    ``force=True``, which removes existing handlers first.

    Args:
        level: Minimum level, int or name ('DEBUG', 'INFO', ...).
        json_format: Use JSONFormatter instead of StructuredFormatter.
        stream: Output stream, default sys.stderr. The MCP server must
            never log to stdout, which carries the protocol.
        include_structured: Append key=value data in text mode.
        force: Reconfigure even if already configured.

    Example:
        >>> configure_logging(level="DEBUG")
        >>> configure_logging(json_format=True, force=True)
    """
    with _config_lock:
        if force:
            _reset_logging_impl()
        _configure_logging_impl(level, json_format, stream, include_structured)


def _configure_logging_impl(
    level: int | str = logging.INFO,
    json_format: bool = False,
    stream: Any = None,
    include_structured: bool = True,
) -> None:
    """Internal implementation of configure_logging (assumes lock is held)."""
    global _configured

    if _configured:
        return

    logging.setLoggerClass(StructuredLogger)

    if stream is None:
        stream = sys.stderr
    handler = logging.StreamHandler(stream)

    formatter: logging.Formatter
    if json_format:
        formatter = JSONFormatter()
    else:
        formatter = StructuredFormatter(include_structured=include_structured)
    handler.setFormatter(formatter)

    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(level)
    root.addHandler(handler)
    root.propagate = False

    _configured = True


def _reset_logging_impl() -> None:
    """Internal implementation of reset_logging (assumes lock is held)."""
    global _configured

    root = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in root.handlers[:]:
        root.removeHandler(handler)
        handler.close()

    _configured = False


def reset_logging() -> None:
    """Reset the logging system to unconfigured state (for testing)."""
    with _config_lock:
        _reset_logging_impl()


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger, configuring defaults on first use.

    Args:
        name: Logger name, normally ``__name__``.

    Returns:
        StructuredLogger accepting keyword structured data.

    Example:
        >>> logger = get_logger("telescope_control.clients.network")
        >>> logger.info("Connecting", host="localhost", port=10001)
    """
    # Double-checked locking for lazy initialization
    if not _configured:
        with _config_lock:
            if not _configured:  # pragma: no branch
                _configure_logging_impl()

    # Loggers created before setLoggerClass keep their old class
    logger = logging.getLogger(name)
    if not isinstance(logger, StructuredLogger):
        logger.__class__ = StructuredLogger
    return cast(StructuredLogger, logger)
