"""
Structured Logging

One JSON object per line (or a plain text line for local use) on the
``bankease`` logger. Records carry optional structured fields; the request
correlation id is picked up from context so domain modules need not pass it.
"""

import contextvars
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional


STRUCTURED_FIELDS = ("correlation_id", "user_id", "action", "resource", "extra")

# Set per HTTP request by the API middleware
_correlation_id = contextvars.ContextVar('correlation_id', default=None)


def set_correlation_id(correlation_id: Optional[str]) -> contextvars.Token:
    return _correlation_id.set(correlation_id)


def reset_correlation_id(token: contextvars.Token) -> None:
    _correlation_id.reset(token)


def get_correlation_id() -> Optional[str]:
    return _correlation_id.get()


def _structured_fields(record: logging.LogRecord) -> Dict[str, Any]:
    found = {name: getattr(record, name, None) for name in STRUCTURED_FIELDS}
    if found["correlation_id"] is None:
        found["correlation_id"] = get_correlation_id()
    return {name: value for name, value in found.items() if value is not None}


class JSONFormatter(logging.Formatter):
    """Renders a record as a single JSON line"""

    def format(self, record):
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        entry.update(_structured_fields(record))
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Human readable line with structured fields appended as key=value"""

    def __init__(self):
        super().__init__("%(asctime)s %(levelname)s %(name)s: %(message)s")

    def format(self, record):
        line = super().format(record)
        pairs = " ".join(f"{k}={v}" for k, v in _structured_fields(record).items())
        return f"{line} [{pairs}]" if pairs else line


def setup_logging(level: str = "INFO", logger_name: str = "bankease",
                  fmt: str = "json") -> logging.Logger:
    """
    Install a single stream handler on the application logger.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        logger_name: Root of the application's logger hierarchy
        fmt: "json" or "text"

    Returns:
        The configured logger; calling again replaces its handler
    """
    logger = logging.getLogger(logger_name)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(TextFormatter() if fmt == "text" else JSONFormatter())
    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper()))
    logger.propagate = False
    return logger


def get_logger(name: str = "bankease") -> logging.Logger:
    return logging.getLogger(name)


def log_action(logger: logging.Logger, level: str, message: str,
               user_id: Optional[str] = None, action: Optional[str] = None,
               resource: Optional[str] = None, correlation_id: Optional[str] = None,
               extra: Optional[dict] = None):
    """
    Log a domain event with structured fields.

    Args:
        logger: Logger to emit on
        level: Level name (info, warning, error, ...)
        message: Human readable message; never include PINs or tokens
        user_id: Account the event belongs to
        action: Machine readable event name, e.g. ``transfer``
        resource: Affected resource, e.g. ``transaction:TXN...``
        correlation_id: Overrides the request correlation id from context
        extra: Additional structured data
    """
    levelno = getattr(logging, level.upper())
    if not logger.isEnabledFor(levelno):
        return

    fields = {
        "user_id": user_id,
        "action": action,
        "resource": resource,
        "correlation_id": correlation_id,
        "extra": extra,
    }
    logger.log(levelno, message, extra={k: v for k, v in fields.items() if v})
