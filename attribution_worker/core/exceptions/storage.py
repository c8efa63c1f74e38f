"""
Key-value store errors.

A failure on a single key is handled by the repository that made the call;
only a store that is unreachable for the whole run reaches the CLI.
"""

from typing import Any, Dict, Optional

from .base import AttributionWorkerException


class StorageError(AttributionWorkerException):
    """Base exception for key-value store errors"""

    default_code = "STORAGE_ERROR"


class StorageConnectionError(StorageError):
    """The store cannot be reached"""

    default_code = "STORAGE_CONNECTION_ERROR"

    def __init__(
        self,
        message: str,
        connection_details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message, details={"connection": connection_details}, cause=cause)


class StorageTimeoutError(StorageError):
    """A store operation ran past its timeout"""

    default_code = "STORAGE_TIMEOUT"

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        timeout: Optional[float] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(
            message, details={"operation": operation, "timeout": timeout}, cause=cause
        )
        self.operation = operation
        self.timeout = timeout
