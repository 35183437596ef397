"""
Logging setup for appserver.

Records carry the correlation ID of the request being served; the request
logger middleware sets it per request. Output is plain text or one JSON
object per line. JSON output redacts extra fields that look like
credentials or session identifiers unless sensitive logging is enabled.
"""

import json
import logging
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, List, Optional

# Context variable for correlation ID (used across request lifecycle)
correlation_id_ctx: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

# Substrings marking an extra field as sensitive; "sid" covers session cookie names
SENSITIVE_KEYWORDS = frozenset({
    "password", "secret", "key", "token", "credential", "auth", "cookie", "sid", "payload",
})

TEXT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(correlation_id)s] %(message)s"

# Everything a bare LogRecord carries is not an "extra"
_RECORD_ATTRIBUTES = frozenset(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {
    "message", "asctime", "correlation_id",
}


class CorrelationIdFilter(logging.Filter):
    """Copy the current correlation ID onto every record"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_ctx.get() or "-"
        return True


class StructuredFormatter(logging.Formatter):
    """One JSON object per record"""

    def __init__(self, include_sensitive: bool = False):
        super().__init__()
        self.include_sensitive = include_sensitive

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }

        correlation_id = correlation_id_ctx.get()
        if correlation_id:
            entry["correlation_id"] = correlation_id

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        extra = {
            key: self._redact(key, value)
            for key, value in vars(record).items()
            if key not in _RECORD_ATTRIBUTES
        }
        if extra:
            entry["extra"] = extra

        return json.dumps(entry, default=str)

    def _redact(self, key: str, value: Any) -> Any:
        if self.include_sensitive:
            return value
        lowered = key.lower()
        if any(keyword in lowered for keyword in SENSITIVE_KEYWORDS):
            return "[REDACTED]"
        return value


def setup_logging(
    log_level: str = "INFO",
    enable_json: bool = True,
    log_file: Optional[str] = None,
    include_sensitive: bool = False,
) -> None:
    """
    Configure the root logger.

    Args:
        log_level: Logging level name (DEBUG, INFO, WARNING, ERROR)
        enable_json: JSON lines instead of plain text
        log_file: Also write to this file
        include_sensitive: Keep credential-like extra fields in JSON output
    """
    if enable_json:
        formatter: logging.Formatter = StructuredFormatter(include_sensitive=include_sensitive)
    else:
        formatter = logging.Formatter(TEXT_FORMAT)

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))

    correlation = CorrelationIdFilter()
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(getattr(logging, log_level.upper()))
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(correlation)
        root_logger.addHandler(handler)

    # Requests are logged by the request logger middleware
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def get_correlation_id() -> str:
    """Correlation ID of the current context, created on first use"""
    correlation_id = correlation_id_ctx.get()
    if not correlation_id:
        correlation_id = str(uuid.uuid4())
        correlation_id_ctx.set(correlation_id)
    return correlation_id


def set_correlation_id(correlation_id: str) -> None:
    correlation_id_ctx.set(correlation_id)


def init_application_logging(settings) -> None:
    """Configure logging from application settings"""
    log_level = "DEBUG" if settings.debug else settings.log_level

    setup_logging(
        log_level=log_level,
        enable_json=settings.json_logging,
        log_file=settings.log_file,
        include_sensitive=settings.debug,
    )

    logging.getLogger("appserver.startup").info(
        "Logging configured",
        extra={
            "project": settings.project,
            "env": settings.env,
            "json_logging": settings.json_logging,
            "log_level": log_level,
        },
    )
