"""Structured JSON logging with run context."""
import logging
import sys
from typing import Any

from pythonjsonlogger import jsonlogger

from n8n_registry.config import get_settings


TEXT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


class RunContextFilter(logging.Filter):
    """Add run context to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        """Add default run context fields if not present."""
        if not hasattr(record, "run_id"):
            record.run_id = None
        if not hasattr(record, "package"):
            record.package = None
        return True


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """Custom JSON formatter with standardized field names."""

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        """Add custom fields to the log record."""
        super().add_fields(log_record, record, message_dict)

        if "timestamp" not in log_record:
            log_record["timestamp"] = self.formatTime(record, self.datefmt)

        log_record["level"] = record.levelname
        log_record["logger"] = record.name

        # Drop empty context so lines stay short
        for key in ("run_id", "package"):
            if not log_record.get(key):
                log_record.pop(key, None)


def setup_logging(level: str | None = None, fmt: str | None = None) -> None:
    """
    Configure logging for the refresh run.

    Args:
        level: Overrides settings.log_level
        fmt: Overrides settings.log_format ("json" or "text")
    """
    settings = get_settings()
    level = level or settings.log_level
    fmt = fmt or settings.log_format

    # Logs go to stderr; stdout carries the run summary
    handler = logging.StreamHandler(sys.stderr)

    if fmt == "text":
        formatter: logging.Formatter = logging.Formatter(TEXT_FORMAT)
    else:
        formatter = CustomJsonFormatter(
            "%(timestamp)s %(level)s %(name)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S",
        )
    handler.setFormatter(formatter)
    handler.addFilter(RunContextFilter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level.upper())

    # Reduce noise from third-party libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)


class ContextLoggerAdapter(logging.LoggerAdapter):
    """LoggerAdapter that merges bound context with per-call extra."""

    def process(self, msg: Any, kwargs: Any) -> tuple[Any, Any]:
        kwargs["extra"] = {**self.extra, **(kwargs.get("extra") or {})}
        return msg, kwargs


def get_logger(name: str, **context: Any) -> ContextLoggerAdapter:
    """
    Get a logger with run context support.

    Args:
        name: Logger name (typically __name__)
        **context: Context bound to every record (see with_run_context)

    Returns:
        LoggerAdapter that can accept run context in extra dict
    """
    logger = logging.getLogger(name)
    return ContextLoggerAdapter(logger, extra=with_run_context(**context))


def with_run_context(
    run_id: str | None = None,
    package: str | None = None,
    **kwargs: Any,
) -> dict[str, Any]:
    """
    Create an extra dict with run context for logging.

    Args:
        run_id: Identifier of the refresh run
        package: npm package being scanned
        **kwargs: Additional context fields

    Returns:
        Dict to pass as extra parameter to logger methods
    """
    extra = kwargs.copy()
    if run_id:
        extra["run_id"] = run_id
    if package:
        extra["package"] = package
    return extra
