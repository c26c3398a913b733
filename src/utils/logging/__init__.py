"""Structured logging for the agent registry and orchestrator."""

from .logger import get_logger, reset_logger, StructuredLogger
from .multi_file_logger import MultiFileLogger
from .framework import (
    SmartLogger,
    log_execution,  # Decorator for function logging
    log_operation,  # Context manager for scoped operations
    get_smart_logger,
)

__all__ = [
    "get_logger",
    "reset_logger",
    "StructuredLogger",
    "MultiFileLogger",
    "SmartLogger",
    "log_execution",
    "log_operation",
    "get_smart_logger",
]
