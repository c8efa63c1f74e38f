"""
Main logging module for the Attribution Worker
"""

import logging
from typing import Any, Dict, Optional

from ..config.settings import settings
from .config import LoggingConfig
from .handlers import build_handlers

# Global logger cache
_loggers: Dict[str, logging.Logger] = {}


class StructuredLogger:
    """Wrapper around standard Python logger that supports structured logging with keyword arguments"""

    def __init__(self, logger: logging.Logger):
        self._logger = logger

    @staticmethod
    def _render(message: str, context: Dict[str, Any]) -> str:
        """``message | key=value | key="value with spaces"``"""
        parts = [message]
        for key, value in context.items():
            if isinstance(value, str) and " " in value:
                parts.append(f'{key}="{value}"')
            else:
                parts.append(f"{key}={value}")
        return " | ".join(parts)

    def _log(self, level: int, message: str, kwargs, exc_info: bool = False) -> None:
        if not self._logger.isEnabledFor(level):
            return
        context = {key: value for key, value in kwargs.items() if value is not None}
        self._logger.log(
            level,
            self._render(message, context),
            exc_info=exc_info,
            extra={"event": message, "context": context},
        )

    def debug(self, message: str, **kwargs):
        self._log(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs):
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs):
        self._log(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs):
        self._log(logging.ERROR, message, kwargs)

    def critical(self, message: str, **kwargs):
        self._log(logging.CRITICAL, message, kwargs)

    def exception(self, message: str, **kwargs):
        """Log at ERROR with the active exception's traceback"""
        self._log(logging.ERROR, message, kwargs, exc_info=True)


def setup_logging(config: Optional[LoggingConfig] = None) -> None:
    """Setup logging configuration for the application"""
    if config is None:
        config = LoggingConfig()

    # Clear existing handlers
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    root_logger.setLevel(getattr(logging, config.level.upper()))
    for handler in build_handlers(config):
        root_logger.addHandler(handler)

    for name in config.quiet_loggers:
        logging.getLogger(name).setLevel(logging.WARNING)

    get_logger(__name__).debug(
        "Logging configured", level=config.level, format=config.format, files=config.file.enabled
    )


def get_logger(name: str) -> StructuredLogger:
    """Get a structured logger instance"""
    if name not in _loggers:
        _loggers[name] = logging.getLogger(name)

    return StructuredLogger(_loggers[name])


def build_logging_config() -> LoggingConfig:
    """Build the logging config from application settings"""
    return LoggingConfig(
        level=settings.logging.LOG_LEVEL,
        format=settings.logging.LOG_FORMAT,
        file=settings.logging.LOGGING["file"],
        console=settings.logging.LOGGING["console"],
    )
