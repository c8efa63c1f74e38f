"""
Logging module for the Attribution Worker
"""

from .logger import get_logger, setup_logging, build_logging_config, StructuredLogger
from .formatters import JSONFormatter, ConsoleFormatter, SimpleFormatter
from .handlers import build_handlers
from .config import LoggingConfig

__all__ = [
    "get_logger",
    "setup_logging",
    "build_logging_config",
    "StructuredLogger",
    "JSONFormatter",
    "ConsoleFormatter",
    "SimpleFormatter",
    "build_handlers",
    "LoggingConfig",
]
