"""
Logging utilities for the backup bundle module.

Human-readable or JSON-structured output, plus a session context that tags
every record emitted during a scan or import with the scan session id.
"""

import contextvars
import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional


_CONTEXT_FIELDS = ("session_id", "operation", "archive")

_current_context: contextvars.ContextVar = contextvars.ContextVar(
    "backup_session_context", default=None
)


class StructuredFormatter(logging.Formatter):
    """
    Formatter that outputs JSON-structured log lines.

    Each log line includes:
    - Standard log fields (timestamp, level, message, logger)
    - Session context fields if present (session_id, operation, archive)
    """

    def __init__(self, include_timestamp: bool = True):
        super().__init__()
        self.include_timestamp = include_timestamp

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record as JSON."""
        log_entry = {
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if self.include_timestamp:
            log_entry["timestamp"] = datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat()

        for field in _CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                log_entry[field] = value

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


class HumanReadableFormatter(logging.Formatter):
    """
    Formatter that outputs human-readable log lines with session context.

    Format: TIMESTAMP [LEVEL] LOGGER - MESSAGE [session_id=X]
    """

    def __init__(self, include_timestamp: bool = True):
        if include_timestamp:
            fmt = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
        else:
            fmt = "[%(levelname)s] %(name)s - %(message)s"
        super().__init__(fmt, datefmt="%Y-%m-%d %H:%M:%S")

    def format(self, record: logging.LogRecord) -> str:
        base = super().format(record)

        context_parts = []
        for field in _CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                context_parts.append(f"{field}={value}")

        if context_parts:
            return f"{base} [{' '.join(context_parts)}]"
        return base


class SessionContextFilter(logging.Filter):
    """Copies the active SessionContext fields onto each record."""

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in SessionContext.get_current().items():
            if getattr(record, key, None) is None:
                setattr(record, key, value)
        return True


def configure_logging(
    level: int = logging.INFO,
    structured: bool = False,
    include_timestamp: bool = True,
) -> None:
    """
    Configure logging for the backup package.

    Adds a stdout handler to the ``backup`` logger once; repeated calls only
    adjust the level.

    Args:
        level: Logging level (default: INFO)
        include_timestamp: Whether to include timestamp in log messages
        structured: If True, output JSON-structured logs; if False, human-readable
    """
    backup_logger = logging.getLogger("backup")
    backup_logger.setLevel(level)

    if not backup_logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(level)

        if structured:
            formatter = StructuredFormatter(include_timestamp=include_timestamp)
        else:
            formatter = HumanReadableFormatter(include_timestamp=include_timestamp)

        handler.setFormatter(formatter)
        handler.addFilter(SessionContextFilter())
        backup_logger.addHandler(handler)
    else:
        for handler in backup_logger.handlers:
            handler.setLevel(level)


class SessionContext:
    """
    Context manager for tagging log records with scan session fields.

    The active context is tracked per thread, so concurrent scans never see
    each other's session id.

    Example:
        >>> with SessionContext(session_id="4f1c...", operation="import"):
        ...     logger.info("Importing assets")
    """

    def __init__(
        self,
        session_id: Optional[str] = None,
        operation: Optional[str] = None,
        **extra: Any,
    ):
        self.context = {
            "session_id": session_id,
            "operation": operation,
            **extra,
        }
        self.context = {k: v for k, v in self.context.items() if v is not None}
        self._token: Optional[contextvars.Token] = None

    def __enter__(self) -> "SessionContext":
        self._token = _current_context.set(self)
        return self

    def __exit__(self, *args) -> None:
        if self._token is not None:
            _current_context.reset(self._token)
            self._token = None

    @classmethod
    def get_current(cls) -> Dict[str, Any]:
        """Get the current session context."""
        current = _current_context.get()
        if current is None:
            return {}
        return current.context.copy()
