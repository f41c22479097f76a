"""
Structured logging configuration for license-cache.

Emits one machine-readable JSON line per cache event so runs can be audited
after the fact.
"""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Dict, Optional

_RESERVED_ATTRS = frozenset(
    [
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "getMessage",
        "exc_info",
        "exc_text",
        "stack_info",
    ]
)


class StructuredFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "component": getattr(record, "component", "license_cache"),
            "message": record.getMessage(),
        }

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_entry[key] = value

        return json.dumps(log_entry, default=str)


class CurrentStderrHandler(logging.StreamHandler):
    """Stream handler bound to whatever sys.stderr is at emit time."""

    @property
    def stream(self):
        return sys.stderr

    @stream.setter
    def stream(self, value):
        pass


class CacheLogger:
    """Structured logger for cache run events."""

    def __init__(self, name: str = "license_cache.events"):
        self.logger = logging.getLogger(name)
        self._setup_logger()
        self.run_context: Dict[str, Any] = {}

    def _setup_logger(self) -> None:
        """Setup logger with structured formatting."""
        if not self.logger.handlers:
            handler = CurrentStderrHandler()
            handler.setFormatter(StructuredFormatter())
            self.logger.addHandler(handler)
            self.logger.setLevel(logging.WARNING)
            self.logger.propagate = False

    def set_run_context(
        self,
        run_id: Optional[str] = None,
        app: Optional[str] = None,
    ) -> None:
        """Set run context for logging."""
        self.run_context = {}
        if run_id:
            self.run_context["run_id"] = run_id
        if app:
            self.run_context["app"] = app

    def clear_run_context(self) -> None:
        """Clear run context."""
        self.run_context.clear()

    def _log(self, level: str, event_type: str, **kwargs) -> None:
        log_data = {"event_type": event_type, **self.run_context, **kwargs}
        getattr(self.logger, level)(event_type, extra=log_data)

    def info(self, event_type: str, **kwargs) -> None:
        """Log info level event."""
        self._log("info", event_type, **kwargs)

    def warning(self, event_type: str, **kwargs) -> None:
        """Log warning level event."""
        self._log("warning", event_type, **kwargs)

    def error(self, event_type: str, **kwargs) -> None:
        """Log error level event."""
        self._log("error", event_type, **kwargs)

    def debug(self, event_type: str, **kwargs) -> None:
        """Log debug level event."""
        self._log("debug", event_type, **kwargs)


_cache_logger = CacheLogger()


def get_cache_logger() -> CacheLogger:
    """Get cache events logger."""
    return _cache_logger


def log_run_start(run_id: str, app_count: int, force: bool) -> None:
    """Log cache run start event."""
    _cache_logger.set_run_context(run_id)
    _cache_logger.info(
        "cache_run_started", run_id=run_id, app_count=app_count, force=force
    )


def log_run_complete(run_id: str, success: bool, stats: Dict[str, Any]) -> None:
    """Log cache run completion event."""
    level = "info" if success else "warning"
    getattr(_cache_logger, level)(
        "cache_run_completed", run_id=run_id, success=success, **stats
    )
    _cache_logger.clear_run_context()


def log_dependency_result(
    name: str, version: str, record_file: str, cached: bool
) -> None:
    """Log the outcome of caching a single dependency."""
    event = "record_cached" if cached else "record_unchanged"
    _cache_logger.debug(
        event, dependency=name, version=version, record_file=record_file
    )


def log_dependency_failure(name: str, errors: Any) -> None:
    _cache_logger.warning("dependency_failed", dependency=name, errors=list(errors))


def log_stale_record_removed(record_file: str) -> None:
    _cache_logger.info("stale_record_removed", record_file=record_file)


def log_sweep_skipped(reason: str) -> None:
    _cache_logger.warning("sweep_skipped", reason=reason)


def configure_logging(log_level: str = "WARNING") -> None:
    """Configure logging levels for the package loggers."""
    level = getattr(logging, log_level.upper(), logging.WARNING)
    logging.getLogger("license_cache").setLevel(level)
    _cache_logger.logger.setLevel(level)
