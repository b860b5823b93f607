"""
Comprehensive logging system using structlog.
Provides structured logging with different output formats and levels.
"""

import logging
import sys
from pathlib import Path
from typing import Optional
import structlog
from structlog.stdlib import LoggerFactory


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    log_file: Optional[str] = None,
    debug: bool = False
) -> None:
    """
    Set up structured logging with configurable output formats.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Output format (json or console)
        log_file: Optional log file path
        debug: Enable debug mode for more verbose logging
    """

    # Configure standard library logging
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    # Configure structlog processors
    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if debug:
        processors.append(structlog.processors.CallsiteParameterAdder())

    # Add format-specific processors
    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    # Set up file logging if specified
    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(getattr(logging, log_level.upper()))
        file_handler.setFormatter(logging.Formatter('%(message)s'))

        logging.getLogger().addHandler(file_handler)

    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)

    logger = structlog.get_logger(__name__)
    logger.info(
        "Logging system initialized",
        level=log_level,
        format=log_format,
        file=str(log_file) if log_file else None,
        debug=debug
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


class CycleLogger:
    """
    Specialized logger for poll cycles with context management.
    """

    def __init__(self, name: str = "poll_cycle"):
        self.logger = structlog.get_logger(name)
        self.context = {}

    def bind_context(self, **kwargs) -> 'CycleLogger':
        """
        Bind context variables to the logger.

        Args:
            **kwargs: Context variables to bind

        Returns:
            Self for method chaining
        """
        self.context.update(kwargs)
        return self

    def log_cycle_start(self, date: str, state: str) -> None:
        """Log poll cycle start."""
        self.logger.info(
            "Poll cycle started",
            date=date,
            baseline_state=state,
            **self.context
        )

    def log_cycle_complete(self, date: str, lessons: int, changes: int, duration_seconds: float) -> None:
        """Log poll cycle completion."""
        self.logger.info(
            "Poll cycle completed",
            date=date,
            lessons=lessons,
            changes=changes,
            duration_seconds=round(duration_seconds, 3),
            **self.context
        )

    def log_change(self, change_type: str, subject: str, start: str) -> None:
        """Log a detected lesson change."""
        self.logger.info(
            "Lesson change detected",
            change_type=change_type,
            subject=subject,
            start=start,
            **self.context
        )

    def log_error(self, error: str, consecutive_failures: Optional[int] = None) -> None:
        """Log error with context."""
        self.logger.error(
            "Poll cycle error occurred",
            error=error,
            consecutive_failures=consecutive_failures,
            **self.context
        )

    def log_retry(self, url: str, attempt: int, max_attempts: int, delay: float) -> None:
        """Log retry attempt."""
        self.logger.warning(
            "Retrying request",
            url=url,
            attempt=attempt,
            max_attempts=max_attempts,
            delay_seconds=delay,
            **self.context
        )

    def log_session_refresh(self, reason: str) -> None:
        """Log re-authentication against the backend."""
        self.logger.info(
            "Refreshing session",
            reason=reason,
            **self.context
        )
