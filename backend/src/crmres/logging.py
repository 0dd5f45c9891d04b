"""Structured logging configuration for CRMRES.

Provides JSON-formatted logs for production and human-readable
logs for development.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any

from .config import get_settings

# Attributes present on every LogRecord; anything else came in via ``extra``
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None)).keys()
) | {"message", "asctime"}


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as JSON."""
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                log_data[key] = value

        if record.funcName:
            log_data["function"] = record.funcName
        if record.lineno:
            log_data["line"] = record.lineno

        return json.dumps(log_data, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable log formatter for development."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


def setup_logging() -> None:
    """Configure logging based on settings."""
    settings = get_settings()

    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    if settings.log_format == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(TextFormatter())

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    # Suppress noisy loggers
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("alembic").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    logger = get_logger(__name__)
    logger.info(
        "Logging initialized",
        extra={
            "environment": settings.environment,
            "log_level": settings.log_level,
            "log_format": settings.log_format,
        },
    )


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the given name.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Configured logger instance
    """
    return logging.getLogger(name)


class LoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that adds context to all log messages."""

    def process(
        self, msg: str, kwargs: dict[str, Any]
    ) -> tuple[str, dict[str, Any]]:
        """Process the logging message and add extra context."""
        extra = kwargs.get("extra", {})
        extra.update(self.extra)
        kwargs["extra"] = extra
        return msg, kwargs


def get_context_logger(name: str, **context: Any) -> LoggerAdapter:
    """Get a logger with additional context.

    Args:
        name: Logger name
        **context: Context fields to add to all log messages

    Returns:
        Logger adapter with context

    Usage:
        logger = get_context_logger(__name__, run_id="abc123", mode="batch")
        logger.info("Resolving deal")  # Includes run_id and mode
    """
    return LoggerAdapter(get_logger(name), context)


# =========================
# Convenience functions
# =========================


def log_resolution_event(
    entity: str,
    key: str | None,
    entity_id: str | None,
    action: str,
    mode: str | None = None,
) -> None:
    """Log an entity resolution event.

    Args:
        entity: Entity kind (company, contact)
        key: Resolution key (domain, name, or email)
        entity_id: Resolved entity ID
        action: What happened (found, created, suffixed, race_requery,
            attached, kept)
        mode: Resolution mode (batch or incremental)
    """
    logger = get_logger("crmres.resolution")
    logger.debug(
        f"Resolution {entity} {action}: {key} -> {entity_id or 'none'}",
        extra={
            "entity": entity,
            "resolution_key": key,
            "entity_id": entity_id,
            "action": action,
            "mode": mode,
            "event": "entity_resolution",
        },
    )


def log_run_start(run_id: str, mode: str) -> None:
    """Log the start of a resolution run."""
    logger = get_logger("crmres.runs")
    logger.info(
        f"Starting {mode} resolution run {run_id}",
        extra={"run_id": run_id, "mode": mode, "event": "run_start"},
    )


def log_run_complete(
    run_id: str,
    success_count: int,
    error_count: int,
    duration_seconds: float,
) -> None:
    """Log the completion of a resolution run."""
    logger = get_logger("crmres.runs")
    logger.info(
        f"Completed resolution run {run_id}",
        extra={
            "run_id": run_id,
            "success_count": success_count,
            "error_count": error_count,
            "duration_seconds": duration_seconds,
            "event": "run_complete",
        },
    )


def log_review_flagged(deal_id: str, reason: str, run_id: str | None = None) -> None:
    """Log a deal being flagged for manual review."""
    logger = get_logger("crmres.review")
    logger.warning(
        f"Deal {deal_id} flagged for review: {reason}",
        extra={
            "deal_id": deal_id,
            "reason": reason,
            "run_id": run_id,
            "event": "review_flagged",
        },
    )
