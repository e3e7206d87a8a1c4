"""
Logging setup and configuration utilities.

This module configures loguru sinks (console and rotating file) and routes
records emitted through the standard ``logging`` module into loguru, so
modules can keep using ``logging.getLogger(__name__)``.
"""

import inspect
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from loguru import logger as loguru_logger

from ..config.models import LoggingConfig
from ...core.interfaces.lifecycle import IComponent

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)


class InterceptHandler(logging.Handler):
    """Forward standard library log records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level: Any = loguru_logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        # Walk back to the frame that issued the logging call
        frame, depth = inspect.currentframe(), 0
        while frame and (depth == 0 or frame.f_code.co_filename == logging.__file__):
            frame = frame.f_back
            depth += 1

        loguru_logger.opt(depth=depth, exception=record.exc_info).log(
            level, record.getMessage())


def setup_logging(config: LoggingConfig) -> None:
    """
    Setup application logging with the given configuration.

    Args:
        config: Logging configuration
    """
    level = config.level.upper()
    loguru_logger.remove()

    if config.console_enabled:
        loguru_logger.add(
            sys.stderr,
            format=CONSOLE_FORMAT,
            level=level,
            colorize=True,
            backtrace=True,
            diagnose=False
        )

    if config.file_enabled:
        log_dir = Path(config.log_directory)
        log_dir.mkdir(parents=True, exist_ok=True)

        loguru_logger.add(
            log_dir / "moteve.log",
            format=config.format,
            level=level,
            rotation=config.max_file_size,
            retention=config.backup_count,
            compression="zip",
            enqueue=True,
            backtrace=True,
            diagnose=False
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name in ("uvicorn", "uvicorn.error", "uvicorn.access", "fastapi"):
        std_logger = logging.getLogger(name)
        std_logger.handlers = [InterceptHandler()]
        std_logger.propagate = False


class LoggingManager(IComponent):
    """
    Logging manager for runtime logging configuration.

    Registered in the container so middleware can emit access and error
    records with structured context.
    """

    def __init__(self, config: Dict[str, Any]) -> None:
        self._config = LoggingConfig(**config)
        self._started = False
        self._logger = logging.getLogger(__name__)

    @property
    def name(self) -> str:
        return "LoggingManager"

    @property
    def config(self) -> LoggingConfig:
        return self._config

    async def start(self) -> None:
        if self._started:
            return

        setup_logging(self._config)
        self._started = True

        self._logger.info(f"Logging started at level {self._config.level}")

    async def stop(self) -> None:
        if not self._started:
            return

        self._logger.info("Logging manager stopped")
        self._started = False

    async def configure(self, config: Dict[str, Any]) -> None:
        """Replace the logging configuration, re-applying it if running."""
        self._config = LoggingConfig(**config)
        if self._started:
            setup_logging(self._config)
            self._logger.info("Logging configuration updated")

    async def check_health(self) -> Dict[str, Any]:
        log_dir = Path(self._config.log_directory)

        return {
            'healthy': True,
            'status': 'running' if self._started else 'stopped',
            'details': {
                'log_level': self._config.level,
                'log_directory': str(log_dir),
                'log_directory_exists': log_dir.exists(),
                'console_enabled': self._config.console_enabled,
                'file_enabled': self._config.file_enabled,
            }
        }

    def log_access(self, message: str, **kwargs: Any) -> None:
        """Log an access message with request context."""
        loguru_logger.bind(access_log=True, **kwargs).info(message)

    def log_error(self, message: str, error: Optional[BaseException] = None, **kwargs: Any) -> None:
        """Log an error message, with traceback when an exception is given."""
        bound = loguru_logger.bind(**kwargs)
        if error is not None:
            bound.opt(exception=error).error(f"{message}: {error}")
        else:
            bound.error(message)
