"""
Logging setup for the order engine.

Builds the root ``order_engine`` logger from pluggable formatter and
handler strategies, and hands out per-module child loggers.
"""

import logging
import logging.handlers
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

ROOT_LOGGER_NAME = "order_engine"


class ILogFormatter(ABC):
    """Interface for log formatting strategies."""

    @abstractmethod
    def get_formatter(self) -> logging.Formatter:
        """Return a configured formatter instance."""


class StandardLogFormatter(ILogFormatter):
    """Plain timestamp / logger / level / message format."""

    def get_formatter(self) -> logging.Formatter:
        return logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


class PipelineLogFormatter(ILogFormatter):
    """Column-aligned format used for pipeline and worker output."""

    def get_formatter(self) -> logging.Formatter:
        format_string = (
            "%(asctime)s.%(msecs)03d | %(levelname)-8s | %(name)-32s | "
            "%(taskName)s | %(message)s"
        )
        return _TaskAwareFormatter(format_string, datefmt="%Y-%m-%d %H:%M:%S")


class _TaskAwareFormatter(logging.Formatter):
    """Fills ``taskName`` on interpreters whose records lack it."""

    def format(self, record: logging.LogRecord) -> str:
        if not getattr(record, "taskName", None):
            record.taskName = "-"
        return super().format(record)


class ILogHandler(ABC):
    """Interface for log handler creation strategies."""

    @abstractmethod
    def create_handler(self, formatter: logging.Formatter) -> logging.Handler:
        """
        Create configured log handler.

        Args:
            formatter: Log formatter to use

        Returns:
            logging.Handler: Configured handler instance
        """


class ConsoleLogHandler(ILogHandler):
    """Creates a stream handler for console output."""

    def __init__(self, level: int = logging.INFO) -> None:
        self._level = level

    def create_handler(self, formatter: logging.Formatter) -> logging.Handler:
        handler = logging.StreamHandler()
        handler.setLevel(self._level)
        handler.setFormatter(formatter)
        return handler


class FileLogHandler(ILogHandler):
    """Creates a size-rotated file handler."""

    def __init__(
        self,
        log_file_path: str,
        level: int = logging.DEBUG,
        max_bytes: int = 10 * 1024 * 1024,
        backup_count: int = 5,
    ) -> None:
        """
        Initialize file log handler.

        Args:
            log_file_path: Path to log file
            level: Logging level for file output
            max_bytes: Maximum file size before rotation
            backup_count: Number of rotated files to keep
        """
        self._log_file_path = Path(log_file_path)
        self._level = level
        self._max_bytes = max_bytes
        self._backup_count = backup_count

    def create_handler(self, formatter: logging.Formatter) -> logging.Handler:
        self._log_file_path.parent.mkdir(parents=True, exist_ok=True)

        handler = logging.handlers.RotatingFileHandler(
            filename=str(self._log_file_path),
            maxBytes=self._max_bytes,
            backupCount=self._backup_count,
        )
        handler.setLevel(self._level)
        handler.setFormatter(formatter)
        return handler


class LoggerManager:
    """
    Owns configuration of one named logger and its handlers.

    Reconfiguring replaces every handler, so calling ``configure_logger``
    twice never duplicates output.
    """

    def __init__(self, name: str = ROOT_LOGGER_NAME) -> None:
        self._logger_name = name
        self._logger: Optional[logging.Logger] = None
        self._handlers: Dict[str, logging.Handler] = {}
        self._is_configured = False

    def configure_logger(
        self,
        level: int = logging.INFO,
        formatter: Optional[ILogFormatter] = None,
        handlers: Optional[Dict[str, ILogHandler]] = None,
    ) -> None:
        """
        Configure logger with specified settings.

        Args:
            level: Base logging level
            formatter: Log formatter strategy
            handlers: Mapping of handler name to handler strategy
        """
        self._logger = logging.getLogger(self._logger_name)
        self._logger.setLevel(level)

        for existing in list(self._logger.handlers):
            self._logger.removeHandler(existing)
            existing.close()
        self._handlers.clear()

        log_formatter = (formatter or StandardLogFormatter()).get_formatter()
        if handlers is None:
            handlers = {"console": ConsoleLogHandler(level=level)}

        for handler_name, handler_strategy in handlers.items():
            handler = handler_strategy.create_handler(log_formatter)
            self._logger.addHandler(handler)
            self._handlers[handler_name] = handler

        self._is_configured = True

    def get_logger(self) -> logging.Logger:
        """
        Get configured logger instance.

        Raises:
            RuntimeError: If logger not configured
        """
        if not self._is_configured or self._logger is None:
            raise RuntimeError("Logger not configured. Call configure_logger() first.")

        return self._logger

    def update_log_level(self, level: int) -> None:
        """Update logging level for the logger and all its handlers."""
        if self._logger:
            self._logger.setLevel(level)
            for handler in self._handlers.values():
                handler.setLevel(level)

    def get_handler(self, handler_name: str) -> Optional[logging.Handler]:
        """Get a configured handler by name."""
        return self._handlers.get(handler_name)


def create_engine_logger(
    name: str = ROOT_LOGGER_NAME,
    log_level: str = "INFO",
    log_dir: Optional[str] = "logs",
) -> logging.Logger:
    """
    Factory function to create the pre-configured engine logger.

    Args:
        name: Logger name
        log_level: Logging level as string
        log_dir: Directory for log files; None disables file output

    Returns:
        logging.Logger: Configured logger instance
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        level = logging.INFO

    handlers: Dict[str, ILogHandler] = {"console": ConsoleLogHandler(level=level)}
    if log_dir:
        log_file = Path(log_dir) / f"{name}_{datetime.now().strftime('%Y%m%d')}.log"
        handlers["file"] = FileLogHandler(str(log_file), level=logging.DEBUG)

    manager = LoggerManager(name)
    manager.configure_logger(
        level=level, formatter=PipelineLogFormatter(), handlers=handlers
    )
    return manager.get_logger()


def get_module_logger(module_name: str) -> logging.Logger:
    """
    Get logger for specific module.

    Args:
        module_name: Name of the module

    Returns:
        logging.Logger: Child of the engine's root logger
    """
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{module_name}")
