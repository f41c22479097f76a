"""
Error handling for license-cache.

Provides the exception hierarchy raised by the record store, sources and
configuration layer, plus a centralized handler that logs structured error
context and dispatches callbacks.
"""

import logging
import traceback
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from rich.console import Console
from rich.logging import RichHandler


class LicenseCacheError(Exception):
    """Base class for all license-cache errors."""


class RecordStoreError(LicenseCacheError):
    """A dependency record could not be read, written or deleted."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class SourceError(LicenseCacheError):
    """A dependency source failed to enumerate its dependencies."""


class ConfigurationError(LicenseCacheError):
    """The configuration file is missing, unreadable or invalid."""


class ErrorLevel(Enum):
    WARNING = "WARNING"
    ERROR = "ERROR"


class ErrorCategory(Enum):
    """Which part of a cache run reported the error."""

    RECORD_STORE = "RECORD_STORE"
    SOURCE = "SOURCE"
    EVALUATION = "EVALUATION"


@dataclass
class ErrorContext:
    """A handled error as seen by logs and callbacks."""

    level: ErrorLevel
    category: ErrorCategory
    message: str
    module: str
    function: str
    details: Dict[str, Any] = field(default_factory=dict)
    exception: Optional[Exception] = None
    suggestions: List[str] = field(default_factory=list)

    @property
    def traceback_text(self) -> Optional[str]:
        if self.exception is None:
            return None
        return "".join(traceback.format_exception(self.exception))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "level": self.level.value,
            "category": self.category.value,
            "message": self.message,
            "location": f"{self.module}.{self.function}",
            "details": self.details,
            "exception": repr(self.exception) if self.exception else None,
            "suggestions": self.suggestions,
        }


ErrorCallback = Callable[[ErrorContext], None]


class ErrorHandler:
    """
    Logs cache errors and forwards them to callbacks.

    Callbacks registered for a category see only that category; callbacks
    registered without one see everything. A failing callback is logged and
    never interrupts the run.
    """

    def __init__(
        self,
        logger_name: str = "license_cache",
        log_level: int = logging.WARNING,
        enable_callbacks: bool = True,
    ):
        self.logger = logging.getLogger(logger_name)
        self.logger.setLevel(log_level)
        if not self.logger.handlers:
            handler = RichHandler(console=Console(stderr=True), show_path=False)
            handler.setFormatter(logging.Formatter("%(name)s - %(message)s"))
            self.logger.addHandler(handler)

        self.enable_callbacks = enable_callbacks
        self._callbacks: Dict[Optional[ErrorCategory], List[ErrorCallback]] = {}
        self.error_stats: Dict[str, int] = {}

    def register_callback(
        self, callback: ErrorCallback, category: Optional[ErrorCategory] = None
    ) -> None:
        if self.enable_callbacks:
            self._callbacks.setdefault(category, []).append(callback)

    def handle_error(
        self,
        level: ErrorLevel,
        category: ErrorCategory,
        message: str,
        module: str,
        function: str,
        exception: Optional[Exception] = None,
        details: Optional[Dict[str, Any]] = None,
        suggestions: Optional[List[str]] = None,
    ) -> ErrorContext:
        """
        Record, log and dispatch one error.

        Returns:
            ErrorContext: The context passed to callbacks
        """
        context = ErrorContext(
            level=level,
            category=category,
            message=message,
            module=module,
            function=function,
            details=details or {},
            exception=exception,
            suggestions=suggestions or [],
        )

        stat_key = f"{category.value}_{level.value}"
        self.error_stats[stat_key] = self.error_stats.get(stat_key, 0) + 1

        extra = {k: v for k, v in context.to_dict().items() if k not in ("level", "message") and v}
        self.logger.log(getattr(logging, level.value), f"{message} | {extra}")

        callbacks = self._callbacks.get(category, []) + self._callbacks.get(None, [])
        for callback in callbacks if self.enable_callbacks else []:
            try:
                callback(context)
            except Exception as cb_error:
                self.logger.error(f"Error callback {callback!r} failed: {cb_error}")

        return context

    def warning(self, category: ErrorCategory, message: str, module: str, function: str, **kwargs) -> ErrorContext:
        return self.handle_error(ErrorLevel.WARNING, category, message, module, function, **kwargs)

    def error(self, category: ErrorCategory, message: str, module: str, function: str, **kwargs) -> ErrorContext:
        return self.handle_error(ErrorLevel.ERROR, category, message, module, function, **kwargs)

    def get_error_stats(self) -> Dict[str, int]:
        return self.error_stats.copy()


_global_error_handler: Optional[ErrorHandler] = None


def get_error_handler() -> ErrorHandler:
    """Get the process-wide error handler, creating it on first use."""
    global _global_error_handler
    if _global_error_handler is None:
        _global_error_handler = ErrorHandler()
    return _global_error_handler


def setup_error_handling(
    log_level: int = logging.WARNING,
    enable_callbacks: bool = True,
    logger_name: str = "license_cache",
) -> ErrorHandler:
    """Replace the process-wide error handler with a freshly configured one."""
    global _global_error_handler
    _global_error_handler = ErrorHandler(logger_name, log_level, enable_callbacks)
    return _global_error_handler


def log_store_error(
    message: str,
    module: str,
    function: str,
    file_path: Optional[str] = None,
    exception: Optional[Exception] = None,
) -> ErrorContext:
    """Report a record that could not be read, written or deleted."""
    return get_error_handler().error(
        ErrorCategory.RECORD_STORE,
        message,
        module,
        function,
        details={"file_path": file_path} if file_path is not None else {},
        exception=exception,
        suggestions=[
            "Check permissions on the cache directory",
            "Verify the record file is valid YAML",
        ],
    )
