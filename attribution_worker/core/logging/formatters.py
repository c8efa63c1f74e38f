"""
Logging formatters for the Attribution Worker
"""

import json
import logging
from datetime import datetime, timezone


def _utc_timestamp(record: logging.LogRecord) -> str:
    return datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat().replace("+00:00", "Z")


class JSONFormatter(logging.Formatter):
    """
    One JSON object per line.

    Keyword arguments given to ``StructuredLogger`` are emitted as a nested
    ``context`` object instead of the ``key=value`` text rendering.
    """

    def __init__(self, service: str = "attribution-worker"):
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": _utc_timestamp(record),
            "service": self.service,
            "level": record.levelname,
            "logger": record.name,
            "message": getattr(record, "event", None) or record.getMessage(),
        }
        context = getattr(record, "context", None)
        if context:
            entry["context"] = context
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class ConsoleFormatter(logging.Formatter):
    """Colored single-line output for terminals"""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "")
        line = (
            f"{color}[{_utc_timestamp(record)}] {record.levelname:8s} "
            f"{record.name}: {record.getMessage()}{self.RESET}"
        )
        if record.exc_info:
            line += f"\n{self.formatException(record.exc_info)}"
        return line


class SimpleFormatter(logging.Formatter):
    """Plain text, used for log files"""

    def __init__(self):
        super().__init__("%(asctime)s %(levelname)s %(name)s %(message)s", "%Y-%m-%dT%H:%M:%S")


def build_formatter(formatter_type: str, service: str = "attribution-worker") -> logging.Formatter:
    """Pick a formatter by its configured name"""
    if formatter_type == "json":
        return JSONFormatter(service)
    if formatter_type == "console":
        return ConsoleFormatter()
    return SimpleFormatter()
