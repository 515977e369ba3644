"""
Structured logging setup for the bulk ticket service.
Provides JSON-formatted logs with consistent fields for job and API tracing.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.stdlib import LoggerFactory


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging with JSON output.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            _redact_secrets,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    # Suppress noisy third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


_SECRET_KEYS = {"access_token", "refresh_token", "client_secret"}


def _redact_secrets(logger, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Mask credential fields that slipped into a log call."""
    for key in _SECRET_KEYS & event_dict.keys():
        value = event_dict[key]
        if isinstance(value, str) and value:
            event_dict[key] = preview(value)
    return event_dict


def preview(secret: str | None, length: int = 8) -> str:
    """Short, log-safe prefix of a credential."""
    if not secret:
        return ""
    return secret[:length] + "..."


def get_logger(name: str = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


def log_job_event(event: str, profile_name: str, session_id: str, **fields: Any) -> None:
    """Log a bulk job lifecycle transition with consistent fields."""
    logger = get_logger("jobs")

    log_data = {
        "profile_name": profile_name,
        "session_id": session_id,
        "job_event": event,
        **fields,
    }

    if event == "job_error":
        logger.error("Bulk job failed", **log_data)
    else:
        logger.info("Bulk job transition", **log_data)
