"""
Redis client for the Attribution Worker
"""

import asyncio
import time
from typing import Any, List, Optional, Tuple

from redis.asyncio import Redis
from redis.exceptions import TimeoutError as RedisTimeout

from ..config.settings import settings
from ..exceptions import StorageConnectionError, StorageTimeoutError
from ..logging import get_logger
from ...shared.constants.redis import SLOW_OPERATION_THRESHOLD_MS
from .models import RedisConnectionConfig, RedisMetrics

logger = get_logger(__name__)


class RedisClient:
    """
    Async key-value store adapter.

    Exposes the typed operations the attribution core relies on (get, set,
    setex, delete, scan). Each call is bounded by ``operation_timeout``.
    """

    def __init__(self, config: Optional[RedisConnectionConfig] = None):
        self.config = config or RedisConnectionConfig(
            host=settings.redis.REDIS_HOST,
            port=settings.redis.REDIS_PORT,
            password=settings.redis.REDIS_PASSWORD or None,
            db=settings.redis.REDIS_DB,
            tls=settings.redis.REDIS_TLS,
            operation_timeout=settings.redis.REDIS_OPERATION_TIMEOUT,
        )
        self._client: Optional[Redis] = None
        self._connection_time: Optional[float] = None
        self._metrics = RedisMetrics(last_reset=str(time.time()))
        self._lock = asyncio.Lock()

    async def connect(self) -> None:
        """Establish Redis connection"""
        async with self._lock:
            if self._client is not None:
                return

            try:
                logger.info(
                    "Establishing Redis connection",
                    host=self.config.host,
                    port=self.config.port,
                )

                redis_config = {
                    "host": self.config.host,
                    "port": self.config.port,
                    "password": self.config.password,
                    "db": self.config.db,
                    "decode_responses": self.config.decode_responses,
                    "socket_connect_timeout": self.config.socket_connect_timeout,
                    "socket_timeout": self.config.socket_timeout,
                    "socket_keepalive": self.config.socket_keepalive,
                    "retry_on_timeout": self.config.retry_on_timeout,
                    "health_check_interval": self.config.health_check_interval,
                }

                # Add TLS if enabled and not localhost
                if self.config.tls and self.config.host != "localhost":
                    redis_config["ssl"] = True
                    redis_config["ssl_cert_reqs"] = None

                client = Redis(**redis_config)
                await asyncio.wait_for(client.ping(), timeout=5.0)

                self._client = client
                self._connection_time = time.time()
                logger.info("Redis connection established successfully")

            except asyncio.TimeoutError as e:
                self._metrics.connection_errors += 1
                error_msg = "Redis connection timeout after 5 seconds"
                logger.error(error_msg, host=self.config.host, port=self.config.port)
                raise StorageTimeoutError(
                    message=error_msg, operation="connect", timeout=5.0, cause=e
                )

            except Exception as e:
                self._metrics.connection_errors += 1
                error_msg = f"Failed to connect to Redis: {str(e)}"
                logger.error(
                    error_msg,
                    host=self.config.host,
                    port=self.config.port,
                    error_type=type(e).__name__,
                )
                raise StorageConnectionError(
                    message=error_msg, connection_details=self.config.to_dict(), cause=e
                )

    async def disconnect(self) -> None:
        """Close Redis connection"""
        async with self._lock:
            if self._client is None:
                return

            try:
                await self._client.aclose()
                logger.info(
                    "Redis connection closed",
                    **self._metrics.model_dump(exclude={"last_reset"}),
                )
            except Exception as e:
                logger.warning("Error closing Redis connection", error=str(e))
            finally:
                self._client = None
                self._connection_time = None

    async def get_client(self) -> Redis:
        """Get Redis client, creating connection if needed"""
        if self._client is None:
            await self.connect()
        return self._client

    def _record(self, response_time: float, success: bool) -> None:
        self._metrics.total_operations += 1
        if success:
            self._metrics.successful_operations += 1
        else:
            self._metrics.failed_operations += 1
        self._metrics.average_response_time_ms = (
            self._metrics.average_response_time_ms
            * (self._metrics.total_operations - 1)
            + response_time
        ) / self._metrics.total_operations

    async def execute_operation(self, operation: str, *args, **kwargs) -> Any:
        """Execute a Redis operation with a timeout and metrics tracking"""
        start_time = time.time()
        client = await self.get_client()

        try:
            method = getattr(client, operation)
            result = await asyncio.wait_for(
                method(*args, **kwargs), timeout=self.config.operation_timeout
            )

        except (asyncio.TimeoutError, RedisTimeout) as e:
            self._record((time.time() - start_time) * 1000, success=False)
            self._metrics.timed_out_operations += 1
            raise StorageTimeoutError(
                message=f"Redis operation '{operation}' timed out",
                operation=operation,
                timeout=self.config.operation_timeout,
                cause=e,
            )

        except Exception as e:
            self._record((time.time() - start_time) * 1000, success=False)
            raise StorageConnectionError(
                message=f"Redis operation '{operation}' failed: {str(e)}",
                connection_details=self.config.to_dict(),
                cause=e,
            )

        response_time = (time.time() - start_time) * 1000
        self._record(response_time, success=True)

        if response_time > SLOW_OPERATION_THRESHOLD_MS:
            self._metrics.slow_operations_count += 1
            logger.warning(
                "Slow Redis operation detected",
                operation=operation,
                response_time_ms=round(response_time, 1),
            )

        return result

    async def get(self, key: str) -> Optional[str]:
        """Get a value by key"""
        return await self.execute_operation("get", key)

    async def set(self, key: str, value: str) -> bool:
        """Set a key-value pair without expiry"""
        return await self.execute_operation("set", key, value)

    async def setex(self, key: str, ttl_seconds: int, value: str) -> bool:
        """Set a key-value pair with an expiry in seconds"""
        return await self.execute_operation("setex", key, ttl_seconds, value)

    async def delete(self, *keys: str) -> int:
        """Delete one or more keys"""
        if not keys:
            return 0
        return await self.execute_operation("delete", *keys)

    async def scan(
        self, cursor: int = 0, match: Optional[str] = None, count: Optional[int] = None
    ) -> Tuple[int, List[str]]:
        """One SCAN page: returns (next_cursor, keys)"""
        next_cursor, keys = await self.execute_operation(
            "scan", cursor=cursor, match=match, count=count
        )
        return int(next_cursor), list(keys)


# Global Redis client instance
_redis_client: Optional[RedisClient] = None


def get_redis_client_instance() -> RedisClient:
    """Get the global Redis client instance"""
    global _redis_client

    if _redis_client is None:
        _redis_client = RedisClient()

    return _redis_client


async def close_redis_client() -> None:
    """Close the global Redis connection"""
    global _redis_client

    if _redis_client:
        await _redis_client.disconnect()
        _redis_client = None
