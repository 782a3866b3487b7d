"""Observability module for telescope-control.

Provides structured logging and the per-slot diagnostic log files.

Example:
    from telescope_control.observability import get_logger, LogContext

    logger = get_logger(__name__)

    with LogContext(slot=1):
        logger.info("Goto sent", ra_hours=5.59, dec_degrees=-5.39)
"""

from telescope_control.observability.diagnostics import (
    DiagnosticLog,
    diagnostic_log_path,
)
from telescope_control.observability.logging import (
    LogContext,
    StructuredLogger,
    configure_logging,
    get_logger,
    reset_logging,
)

__all__ = [
    # Logging
    "LogContext",
    "StructuredLogger",
    "configure_logging",
    "get_logger",
    "reset_logging",
    # Diagnostics
    "DiagnosticLog",
    "diagnostic_log_path",
]
