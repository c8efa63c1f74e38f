"""
Logging configuration for the Attribution Worker
"""

from typing import List

from pydantic import BaseModel, Field


class FileLogConfig(BaseModel):
    """Rotating log files under ``log_dir``"""

    enabled: bool = False
    log_dir: str = "logs"
    max_file_size: int = 10 * 1024 * 1024
    backup_count: int = 5
    app_log_enabled: bool = True
    error_log_enabled: bool = True


class ConsoleLogConfig(BaseModel):
    enabled: bool = True
    level: str = "INFO"


class LoggingConfig(BaseModel):
    """Complete logging configuration"""

    level: str = "INFO"
    format: str = "console"  # console, json or simple
    service: str = "attribution-worker"

    file: FileLogConfig = Field(default_factory=FileLogConfig)
    console: ConsoleLogConfig = Field(default_factory=ConsoleLogConfig)

    # Client libraries that log every request at INFO
    quiet_loggers: List[str] = Field(default_factory=lambda: ["httpx", "httpcore", "redis"])
