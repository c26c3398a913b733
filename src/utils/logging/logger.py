"""Structured JSON logging for the registry and orchestrator.

Every record is a single JSON object per line:

    {"timestamp": ..., "level": "INFO", "message": "agent_registered", ...}

The ``message`` is an event name and everything else is keyword context, which
keeps the logs greppable and machine-readable at the same time.

Key features:
- JSON structured logging on top of the stdlib ``logging`` module
- Correlation ID support for tracing one orchestration across components
- Performance tracking via a context manager
"""

import json
import logging
import logging.handlers
import os
import time
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

# Context-local so concurrent asyncio tasks keep their own correlation IDs
_correlation_id: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

LOGGER_NAME = "agent_orchestrator"


class StructuredLogger:
    """Single-file JSON logger with built-in correlation and performance tracking."""

    def __init__(self, log_file: str = "logs/system.log", level: int = logging.INFO):
        """Initialize the logger.

        Args:
            log_file: Path to log file (directory is created if needed)
            level: Logging level (default: INFO)
        """
        self.logger = logging.getLogger(LOGGER_NAME)
        self.logger.setLevel(level)

        # Remove any existing handlers to avoid duplicates
        self.logger.handlers.clear()

        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=50 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
        self.logger.addHandler(handler)
        self.logger.propagate = False

    def _get_correlation_id(self) -> Optional[str]:
        return _correlation_id.get()

    def set_correlation_id(self, correlation_id: Optional[str] = None) -> str:
        """Set correlation ID for the current context.

        Args:
            correlation_id: ID to use, or None to generate a new one

        Returns:
            The correlation ID that was set
        """
        if correlation_id is None:
            correlation_id = str(uuid.uuid4())
        _correlation_id.set(correlation_id)
        return correlation_id

    def clear_correlation_id(self):
        _correlation_id.set(None)

    def _build_entry(self, level: int, message: str, **kwargs) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": logging.getLevelName(level),
            "message": message,
            **kwargs,
        }
        correlation_id = self._get_correlation_id()
        if correlation_id and "correlation_id" not in entry:
            entry["correlation_id"] = correlation_id
        return json.dumps(entry, default=str)

    def _log(self, level: int, message: str, **kwargs):
        self.logger.log(level, self._build_entry(level, message, **kwargs))

    def isEnabledFor(self, level: int) -> bool:
        return self.logger.isEnabledFor(level)

    def debug(self, message: str, **kwargs):
        self._log(logging.DEBUG, message, **kwargs)

    def info(self, message: str, **kwargs):
        self._log(logging.INFO, message, **kwargs)

    def warning(self, message: str, **kwargs):
        self._log(logging.WARNING, message, **kwargs)

    def error(self, message: str, **kwargs):
        self._log(logging.ERROR, message, **kwargs)

    def critical(self, message: str, **kwargs):
        self._log(logging.CRITICAL, message, **kwargs)

    def close(self):
        for handler in list(self.logger.handlers):
            handler.close()
            self.logger.removeHandler(handler)

    @contextmanager
    def track_performance(self, operation: str, **context: Any):
        """Log ``<operation>_started`` / ``<operation>_completed`` with duration.

        Usage:
            with logger.track_performance("registry_save", key="a2a:registry:agents"):
                ...
        """
        start_time = time.time()
        self.info(f"{operation}_started", operation=operation, **context)
        try:
            yield
        finally:
            self.info(
                f"{operation}_completed",
                operation=operation,
                duration_seconds=round(time.time() - start_time, 3),
                **context,
            )


# Global logger instance
_logger = None


def _level_from_env() -> int:
    level_name = os.environ.get("LOG_LEVEL", "INFO").upper()
    level = logging.getLevelName(level_name)
    return level if isinstance(level, int) else logging.INFO


def get_logger(component: Optional[str] = None) -> StructuredLogger:
    """Get the global logger instance (singleton).

    The component argument is accepted for call-site readability; routing by
    component happens through the ``component`` keyword on each record.
    """
    global _logger
    if _logger is None:
        from .multi_file_logger import MultiFileLogger

        _logger = MultiFileLogger(
            log_dir=os.environ.get("LOGS_DIR", "logs"),
            level=_level_from_env(),
        )
    return _logger


def reset_logger():
    """Drop the global logger so the next call re-reads LOGS_DIR / LOG_LEVEL."""
    global _logger
    if _logger is not None:
        _logger.close()
    _logger = None
