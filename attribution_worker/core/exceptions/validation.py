"""
Record validation exceptions
"""

from typing import Any, Optional

from .base import AttributionWorkerException


class MalformedRecordError(AttributionWorkerException):
    """Raised when a stored record cannot be parsed or lacks a required field"""

    default_code = "MALFORMED_RECORD"

    def __init__(
        self,
        message: str,
        record_type: str = "unknown",
        field: Optional[str] = None,
        key: Optional[str] = None,
        value: Any = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(
            message,
            details={
                "record_type": record_type,
                "field": field,
                "key": key,
                "value": str(value)[:200] if value is not None else None,
            },
            cause=cause,
        )
        self.record_type = record_type
        self.field = field
        self.key = key
