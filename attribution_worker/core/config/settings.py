"""
Application settings and configuration management
"""

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ...shared.constants.app import (
    PROJECT_NAME,
    VERSION,
    ENVIRONMENT_DEVELOPMENT,
    DEFAULT_RUN_BUDGET_SECONDS,
    DEFAULT_BATCH_RESERVE_SECONDS,
    MIN_FAN_OUT,
    MAX_FAN_OUT,
    DEFAULT_FAN_OUT,
    DEFAULT_IPINFO_BASE_URL,
    DEFAULT_GEO_TIMEOUT_SECONDS,
    DEFAULT_GEO_MEMORY_CACHE_SIZE,
    DEFAULT_GEO_MEMORY_CACHE_TTL_SECONDS,
)
from ...shared.constants.redis import (
    DEFAULT_REDIS_PORT,
    DEFAULT_REDIS_DB,
    DEFAULT_REDIS_TLS,
    DEFAULT_OPERATION_TIMEOUT_SECONDS,
    DEFAULT_SCAN_COUNT,
    DEFAULT_SCAN_MAX_ITERATIONS,
    GEO_CACHE_TTL_SECONDS,
    JOURNEY_TTL_SECONDS,
    PROGRESS_TTL_SECONDS,
    STRICT_MARKER_TTL_SECONDS,
    IMPROVEMENT_MARKER_TTL_SECONDS,
)
from ..exceptions import ConfigurationError, EnvironmentVariableError


class RedisSettings(BaseSettings):
    """Redis configuration settings"""

    REDIS_HOST: str = Field(default="localhost")
    REDIS_PORT: int = Field(default=DEFAULT_REDIS_PORT)
    REDIS_PASSWORD: str = Field(default="")
    REDIS_DB: int = Field(default=DEFAULT_REDIS_DB)
    REDIS_TLS: bool = Field(default=DEFAULT_REDIS_TLS)

    # Every store call carries its own timeout, well inside the run budget
    REDIS_OPERATION_TIMEOUT: float = Field(default=DEFAULT_OPERATION_TIMEOUT_SECONDS)

    @field_validator("REDIS_HOST")
    @classmethod
    def validate_redis_host(cls, v):
        if not v:
            return "localhost"
        return v

    @field_validator("REDIS_OPERATION_TIMEOUT")
    @classmethod
    def validate_operation_timeout(cls, v):
        if not 1.0 <= v <= 5.0:
            raise ValueError("REDIS_OPERATION_TIMEOUT must be between 1 and 5 seconds")
        return v


class GeoSettings(BaseSettings):
    """IP geolocation provider settings"""

    GEO_LOOKUP_ENABLED: bool = Field(default=True)
    IPINFO_TOKEN: str = Field(default="")
    IPINFO_BASE_URL: str = Field(default=DEFAULT_IPINFO_BASE_URL)
    GEO_LOOKUP_TIMEOUT: float = Field(default=DEFAULT_GEO_TIMEOUT_SECONDS)
    GEO_CACHE_TTL_SECONDS: int = Field(default=GEO_CACHE_TTL_SECONDS)

    # Process-local cache in front of the shared store cache
    GEO_MEMORY_CACHE_SIZE: int = Field(default=DEFAULT_GEO_MEMORY_CACHE_SIZE)
    GEO_MEMORY_CACHE_TTL_SECONDS: int = Field(
        default=DEFAULT_GEO_MEMORY_CACHE_TTL_SECONDS
    )

    @field_validator("GEO_LOOKUP_TIMEOUT")
    @classmethod
    def validate_lookup_timeout(cls, v):
        if v <= 0 or v > 2.0:
            raise ValueError("GEO_LOOKUP_TIMEOUT must be in (0, 2] seconds")
        return v


class AttributionSettings(BaseSettings):
    """Attribution matching and batch processing settings"""

    # Confidence points per signal
    SESSION_MATCH_CONFIDENCE: int = Field(default=300)
    FINGERPRINT_MATCH_CONFIDENCE: int = Field(default=295)
    PRIMARY_IP_CONFIDENCE: int = Field(default=280)
    CONVERSION_IP_CONFIDENCE: int = Field(default=260)
    FALLBACK_IP_CONFIDENCE: int = Field(default=240)
    DEVICE_SIGNATURE_CONFIDENCE: int = Field(default=220)
    SCREEN_SIGNATURE_CONFIDENCE: int = Field(default=200)
    WEBGL_SIGNATURE_CONFIDENCE: int = Field(default=180)
    GEOGRAPHIC_CONFIDENCE: int = Field(default=100)
    CONVERSION_CONFIDENCE: int = Field(default=1000)
    CONVERSION_ONLY_CONFIDENCE: int = Field(default=100)

    # Points -> tier cut-offs for identity and index matches
    DEFINITE_POINTS_THRESHOLD: int = Field(default=295)
    STRONG_POINTS_THRESHOLD: int = Field(default=240)

    # Geographic score thresholds. A city match alone (score 3) is still accepted
    # as POSSIBLE in standard mode, below GEO_MATCH_THRESHOLD; older
    # deployments rejected city-only matches.
    # TODO: confirm with product whether standard mode should reject city-only matches.
    GEO_MATCH_THRESHOLD: int = Field(default=4)
    GEO_STRONG_THRESHOLD: int = Field(default=5)
    GEO_DEFINITE_THRESHOLD: int = Field(default=6)

    # Lookback windows
    TIGHT_WINDOW_HOURS: float = Field(default=24)
    RECOVERY_WINDOW_HOURS: float = Field(default=72)
    JOURNEY_WINDOW_HOURS: float = Field(default=168)
    STRICT_WINDOW_MINUTES: float = Field(default=90)
    IMPROVEMENT_LOOKBACK_HOURS: float = Field(default=72)

    # Batching and budget
    FAN_OUT_SIZE: int = Field(default=DEFAULT_FAN_OUT)
    RUN_BUDGET_SECONDS: float = Field(default=DEFAULT_RUN_BUDGET_SECONDS)
    BATCH_RESERVE_SECONDS: float = Field(default=DEFAULT_BATCH_RESERVE_SECONDS)
    JOURNEY_BATCH_SIZE: int = Field(default=20)
    JOURNEY_MAX_BATCHES: int = Field(default=10)
    RECOVERY_BATCH_SIZE: int = Field(default=10)
    STRICT_BATCH_SIZE: int = Field(default=3)
    CLEANUP_DELETE_BATCH_SIZE: int = Field(default=10)
    DATE_RANGE_DAYS: int = Field(default=7)

    # Scanning
    SCAN_COUNT: int = Field(default=DEFAULT_SCAN_COUNT)
    SCAN_MAX_ITERATIONS: int = Field(default=DEFAULT_SCAN_MAX_ITERATIONS)

    # Expiries
    JOURNEY_TTL_SECONDS: int = Field(default=JOURNEY_TTL_SECONDS)
    PROGRESS_TTL_SECONDS: int = Field(default=PROGRESS_TTL_SECONDS)
    STRICT_MARKER_TTL_SECONDS: int = Field(default=STRICT_MARKER_TTL_SECONDS)
    IMPROVEMENT_MARKER_TTL_SECONDS: int = Field(default=IMPROVEMENT_MARKER_TTL_SECONDS)

    @field_validator("FAN_OUT_SIZE")
    @classmethod
    def validate_fan_out(cls, v):
        # Never unbounded against the store
        return max(MIN_FAN_OUT, min(MAX_FAN_OUT, v))


class LoggingSettings(BaseSettings):
    """Logging configuration settings"""

    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: str = Field(default="console")

    LOGGING: dict = Field(
        default={
            "level": "INFO",
            "file": {
                "enabled": False,
                "log_dir": "logs",
                "max_file_size": 10485760,  # 10MB
                "backup_count": 5,
                "app_log_enabled": True,
                "error_log_enabled": True,
            },
            "console": {
                "enabled": True,
                "level": "INFO",
            },
        }
    )


class Settings(BaseSettings):
    """Main application settings"""

    model_config = SettingsConfigDict(
        env_file=[".env.local", ".env"],  # Try .env.local first, then .env
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="allow",
    )

    # App Configuration
    PROJECT_NAME: str = PROJECT_NAME
    VERSION: str = VERSION
    ENVIRONMENT: str = Field(default=ENVIRONMENT_DEVELOPMENT)

    # Sub-settings
    redis: RedisSettings = RedisSettings()
    geo: GeoSettings = GeoSettings()
    attribution: AttributionSettings = AttributionSettings()
    logging: LoggingSettings = LoggingSettings()

    def validate_configuration(self) -> None:
        """
        Validate settings required to run a job.

        Raises:
            ConfigurationError: when a setting is unusable
            EnvironmentVariableError: when a required variable is missing
        """
        if not self.redis.REDIS_HOST:
            raise EnvironmentVariableError("REDIS_HOST")

        if self.geo.GEO_LOOKUP_ENABLED and not self.geo.IPINFO_TOKEN:
            raise EnvironmentVariableError(
                "IPINFO_TOKEN",
                details={"hint": "set GEO_LOOKUP_ENABLED=false to run without geo"},
            )

        attribution = self.attribution
        if attribution.BATCH_RESERVE_SECONDS >= attribution.RUN_BUDGET_SECONDS:
            raise ConfigurationError(
                "BATCH_RESERVE_SECONDS must be smaller than RUN_BUDGET_SECONDS",
                config_key="BATCH_RESERVE_SECONDS",
            )

        if not (
            attribution.GEO_MATCH_THRESHOLD
            <= attribution.GEO_STRONG_THRESHOLD
            <= attribution.GEO_DEFINITE_THRESHOLD
        ):
            raise ConfigurationError(
                "Geo thresholds must satisfy match <= strong <= definite",
                config_key="GEO_MATCH_THRESHOLD",
            )


# Create settings instance
settings = Settings()
