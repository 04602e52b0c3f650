"""
Structured logger for the couch backup system.

Wraps structlog on top of stdlib logging handlers so every component logs
through one configurable sink, rendered as JSON or plain text.
"""

import logging
import sys
from typing import Any, Dict, Optional

import structlog

from ..config.models import LoggingConfig


class BackupLogger:
    """Logger used by every backup component."""

    def __init__(self, name: str = "couch_backup"):
        self.name = name
        self._logger = structlog.get_logger(name)

    def setup_logging(self, config: LoggingConfig) -> None:
        """
        Configure handlers, level and rendering from configuration.

        Args:
            config: Logging configuration
        """
        shared_processors = [
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
        ]

        if config.format == "json":
            renderer = structlog.processors.JSONRenderer()
        else:
            renderer = structlog.dev.ConsoleRenderer(colors=False)

        formatter = structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared_processors,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )

        handlers = [logging.StreamHandler(sys.stderr)]
        if config.log_to_file and config.log_file_path:
            handlers.append(logging.FileHandler(config.log_file_path, encoding="utf-8"))

        stdlib_logger = logging.getLogger(self.name)
        stdlib_logger.handlers.clear()
        for handler in handlers:
            handler.setFormatter(formatter)
            stdlib_logger.addHandler(handler)
        stdlib_logger.setLevel(getattr(logging, config.level))
        stdlib_logger.propagate = False

        structlog.configure(
            processors=[
                structlog.stdlib.filter_by_level,
                *shared_processors,
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ],
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=False,
        )
        self._logger = structlog.get_logger(self.name)

    def bind(self, **context: Any) -> "BackupLogger":
        """Return a logger carrying extra context on every event."""
        bound = BackupLogger(self.name)
        bound._logger = self._logger.bind(**context)
        return bound

    def debug(self, message: str, extra: Optional[Dict[str, Any]] = None) -> None:
        self._logger.debug(message, **(extra or {}))

    def info(self, message: str, extra: Optional[Dict[str, Any]] = None) -> None:
        self._logger.info(message, **(extra or {}))

    def warning(self, message: str, extra: Optional[Dict[str, Any]] = None) -> None:
        self._logger.warning(message, **(extra or {}))

    def error(
        self,
        message: str,
        extra: Optional[Dict[str, Any]] = None,
        exc_info: bool = False,
    ) -> None:
        self._logger.error(message, exc_info=exc_info, **(extra or {}))

    def critical(
        self,
        message: str,
        extra: Optional[Dict[str, Any]] = None,
        exc_info: bool = False,
    ) -> None:
        self._logger.critical(message, exc_info=exc_info, **(extra or {}))
