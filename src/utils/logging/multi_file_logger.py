"""Component-based log file separation.

Each component gets its own log file, with an additional error log that
captures all ERROR level messages across components.

Log Files:
- orchestrator.log: Planning, scheduling and re-planning
- registry.log: Agent registration, discovery and health checks
- a2a_protocol.log: Worker invocations over the A2A protocol
- storage.log: Registry store and orchestrator state persistence
- system.log: Config, startup and everything without a component
- errors.log: All ERROR level messages (cross-component)
"""

import logging
import logging.handlers
from pathlib import Path
from threading import Lock
from typing import Dict, Optional

from .logger import LOGGER_NAME, StructuredLogger


class MultiFileLogger(StructuredLogger):
    """Logger that routes messages to different files based on component."""

    COMPONENT_FILES = {
        "orchestrator": "orchestrator.log",
        "registry": "registry.log",
        "a2a": "a2a_protocol.log",
        "storage": "storage.log",
        "system": "system.log",
        "config": "system.log",
    }

    def __init__(self, log_dir: str = "logs", level: int = logging.INFO):
        # Parent __init__ would attach a single file handler; we route manually
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self.level = level
        self.handlers: Dict[str, logging.Handler] = {}
        self.lock = Lock()

        self.logger = logging.getLogger(LOGGER_NAME)
        self.logger.setLevel(level)
        self.logger.handlers.clear()
        self.logger.propagate = False

        self._setup_handlers()
        self._setup_error_handler()

    def _setup_handlers(self):
        """Create one handler per log file; aliases share the handler."""
        by_filename: Dict[str, logging.Handler] = {}
        for component, filename in self.COMPONENT_FILES.items():
            if filename not in by_filename:
                handler = logging.handlers.RotatingFileHandler(
                    self.log_dir / filename,
                    maxBytes=50 * 1024 * 1024,
                    backupCount=5,
                    encoding="utf-8",
                )
                handler.setFormatter(logging.Formatter("%(message)s"))
                handler.setLevel(self.level)
                by_filename[filename] = handler
            self.handlers[component] = by_filename[filename]

    def _setup_error_handler(self):
        error_handler = logging.handlers.RotatingFileHandler(
            self.log_dir / "errors.log",
            maxBytes=50 * 1024 * 1024,
            backupCount=10,
            encoding="utf-8",
        )
        error_handler.setFormatter(logging.Formatter("%(message)s"))
        error_handler.setLevel(logging.ERROR)
        self.handlers["_errors"] = error_handler

    def _get_handler(self, component: Optional[str]) -> logging.Handler:
        if component and component in self.handlers:
            return self.handlers[component]
        return self.handlers["system"]

    def _log(self, level: int, message: str, **kwargs):
        if not self.logger.isEnabledFor(level):
            return

        record = self.logger.makeRecord(
            self.logger.name, level, "", 0,
            self._build_entry(level, message, **kwargs), (), None,
        )

        with self.lock:
            handler = self._get_handler(kwargs.get("component"))
            if level >= handler.level:
                handler.handle(record)
            if level >= logging.ERROR:
                self.handlers["_errors"].handle(record)

    def close(self):
        """Close every file handler (used when tests swap the log directory)."""
        closed = set()
        for handler in self.handlers.values():
            if id(handler) not in closed:
                handler.close()
                closed.add(id(handler))
        self.handlers.clear()
