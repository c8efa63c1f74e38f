"""
Redis models and configuration classes
"""

from dataclasses import dataclass
from typing import Optional, Dict, Any
from pydantic import BaseModel


@dataclass
class RedisConnectionConfig:
    """Redis connection configuration"""

    host: str
    port: int = 6379
    password: Optional[str] = None
    db: int = 0
    tls: bool = False
    decode_responses: bool = True
    socket_connect_timeout: float = 5.0
    socket_timeout: float = 5.0
    socket_keepalive: bool = True
    retry_on_timeout: bool = False
    health_check_interval: int = 30
    operation_timeout: float = 3.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (password masked)"""
        return {
            "host": self.host,
            "port": self.port,
            "password": "***" if self.password else None,
            "db": self.db,
            "tls": self.tls,
            "decode_responses": self.decode_responses,
            "socket_connect_timeout": self.socket_connect_timeout,
            "socket_timeout": self.socket_timeout,
            "operation_timeout": self.operation_timeout,
        }


class RedisMetrics(BaseModel):
    """Redis performance metrics"""

    total_operations: int = 0
    successful_operations: int = 0
    failed_operations: int = 0
    timed_out_operations: int = 0
    average_response_time_ms: float = 0.0
    slow_operations_count: int = 0
    connection_errors: int = 0
    last_reset: str
