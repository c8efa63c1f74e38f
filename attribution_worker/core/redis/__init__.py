"""
Redis module for the Attribution Worker
"""

from .client import RedisClient, get_redis_client_instance, close_redis_client
from .models import RedisConnectionConfig, RedisMetrics

__all__ = [
    "RedisClient",
    "get_redis_client_instance",
    "close_redis_client",
    "RedisConnectionConfig",
    "RedisMetrics",
]
