"""
Handler construction for the Attribution Worker
"""

import logging
import logging.handlers
import os
from typing import List

from .config import LoggingConfig
from .formatters import build_formatter

APP_LOG_FILE = "attribution-worker.log"
ERROR_LOG_FILE = "attribution-worker-errors.log"


def _rotating_file(config: LoggingConfig, filename: str, level: int) -> logging.Handler:
    os.makedirs(config.file.log_dir, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        os.path.join(config.file.log_dir, filename),
        maxBytes=config.file.max_file_size,
        backupCount=config.file.backup_count,
    )
    handler.setLevel(level)
    # Files never get ANSI colors
    file_format = "simple" if config.format == "console" else config.format
    handler.setFormatter(build_formatter(file_format, config.service))
    return handler


def build_handlers(config: LoggingConfig) -> List[logging.Handler]:
    """Handlers enabled by ``config``: app log, error log and console"""
    level = logging.getLevelName(config.level.upper())
    handlers: List[logging.Handler] = []

    if config.file.enabled:
        if config.file.app_log_enabled:
            handlers.append(_rotating_file(config, APP_LOG_FILE, level))
        if config.file.error_log_enabled:
            handlers.append(_rotating_file(config, ERROR_LOG_FILE, logging.ERROR))

    if config.console.enabled:
        console = logging.StreamHandler()
        console.setLevel(logging.getLevelName(config.console.level.upper()))
        console.setFormatter(build_formatter(config.format, config.service))
        handlers.append(console)

    return handlers
