"""
Base exception class for the Attribution Worker
"""

from typing import Any, Dict, Optional


class AttributionWorkerException(Exception):
    """
    Root of every error the worker raises on purpose.

    Subclasses set ``default_code`` and ``exit_code``; the CLI prints
    ``to_dict()`` and exits with ``exit_code`` when one escapes a job.
    """

    default_code = "ATTRIBUTION_WORKER_ERROR"
    exit_code = 1

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_code
        self.details = {k: v for k, v in (details or {}).items() if v is not None}
        self.cause = cause

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "error_code": self.error_code,
            "message": self.message,
            "exception_type": type(self).__name__,
        }
        if self.details:
            payload["details"] = self.details
        if self.cause is not None:
            payload["cause"] = repr(self.cause)
        return payload
