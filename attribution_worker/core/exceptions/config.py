"""
Startup configuration errors. These are fatal and never retried.
"""

from typing import Any, Dict, Optional

from .base import AttributionWorkerException


class ConfigurationError(AttributionWorkerException):
    """A setting is present but unusable"""

    default_code = "CONFIG_ERROR"
    exit_code = 2

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message, details={"config_key": config_key, **(details or {})}, cause=cause)
        self.config_key = config_key


class EnvironmentVariableError(ConfigurationError):
    """A required environment variable is missing"""

    default_code = "MISSING_ENV_VAR"

    def __init__(self, var_name: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(f"{var_name} is not set", config_key=var_name, details=details)
