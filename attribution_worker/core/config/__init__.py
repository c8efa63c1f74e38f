"""
Configuration for the Attribution Worker
"""

from .settings import (
    AttributionSettings,
    GeoSettings,
    LoggingSettings,
    RedisSettings,
    Settings,
    settings,
)

__all__ = [
    "AttributionSettings",
    "GeoSettings",
    "LoggingSettings",
    "RedisSettings",
    "Settings",
    "settings",
]
