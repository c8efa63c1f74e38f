"""
Custom exceptions for the Attribution Worker
"""

from .base import AttributionWorkerException
from .config import ConfigurationError, EnvironmentVariableError
from .storage import StorageError, StorageConnectionError, StorageTimeoutError
from .validation import MalformedRecordError

__all__ = [
    "AttributionWorkerException",
    "ConfigurationError",
    "EnvironmentVariableError",
    "StorageError",
    "StorageConnectionError",
    "StorageTimeoutError",
    "MalformedRecordError",
]
