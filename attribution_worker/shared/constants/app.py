"""
Application-wide constants
"""

PROJECT_NAME = "attribution-worker"
VERSION = "0.1.0"
ENVIRONMENT_DEVELOPMENT = "development"

# Invocation budget (seconds)
DEFAULT_RUN_BUDGET_SECONDS = 25.0
DEFAULT_BATCH_RESERVE_SECONDS = 8.0

# Fan-out bounds for concurrent store / geo calls
MIN_FAN_OUT = 10
MAX_FAN_OUT = 50
DEFAULT_FAN_OUT = 50

# Geo provider
DEFAULT_IPINFO_BASE_URL = "https://ipinfo.io"
DEFAULT_GEO_TIMEOUT_SECONDS = 2.0
DEFAULT_GEO_MEMORY_CACHE_SIZE = 5000
DEFAULT_GEO_MEMORY_CACHE_TTL_SECONDS = 3600
