"""
Redis-specific constants
"""

# Connection defaults
# ===========================================
DEFAULT_REDIS_PORT = 6379
DEFAULT_REDIS_DB = 0
DEFAULT_REDIS_TLS = False
DEFAULT_OPERATION_TIMEOUT_SECONDS = 3.0
SLOW_OPERATION_THRESHOLD_MS = 50

# Key Namespaces - Records
# ===========================================
JOURNEY_KEY_PREFIX = "customer_journey:"
CONVERSION_KEY_PREFIX = "conversions:"
CONVERSION_DATE_INDEX_PREFIX = "conversion_index_date:"
PAGEVIEW_IP_INDEX_PREFIX = "pageview_index_ip:"
GEO_CACHE_PREFIX = "geo_cache:"

# Key Namespaces - Reverse-index pointers (identity signal -> pageview key)
# ===========================================
ATTRIBUTION_IP_PREFIX = "attribution_ip_"
ATTRIBUTION_SESSION_PREFIX = "attribution_session_"
ATTRIBUTION_FINGERPRINT_PREFIX = "attribution_fp_"
ATTRIBUTION_SCREEN_PREFIX = "attribution_screen_"
ATTRIBUTION_WEBGL_PREFIX = "attribution_webgl_"

# Key Namespaces - Job bookkeeping
# ===========================================
JOURNEY_BUILD_PROGRESS_KEY = "customer_journey_build_progress"
RECOVERY_PROGRESS_KEY = "attribution_recovery_progress"
JOURNEY_ANALYTICS_KEY = "customer_journey_analytics"
STRICT_REPROCESSED_PREFIX = "reprocessed_strict:"
IMPROVEMENT_REPROCESSED_PREFIX = "reprocessed:"

# TTLs (seconds)
# ===========================================
JOURNEY_TTL_SECONDS = 2592000  # 30 days
GEO_CACHE_TTL_SECONDS = 86400  # 24 hours
PROGRESS_TTL_SECONDS = 86400  # 24 hours
ANALYTICS_TTL_SECONDS = 2592000  # 30 days
STRICT_MARKER_TTL_SECONDS = 2592000  # 30 days
IMPROVEMENT_MARKER_TTL_SECONDS = 604800  # 7 days

# Scanning
# ===========================================
DEFAULT_SCAN_COUNT = 1000
DEFAULT_SCAN_MAX_ITERATIONS = 20

__all__ = [
    "DEFAULT_REDIS_PORT",
    "DEFAULT_REDIS_DB",
    "DEFAULT_REDIS_TLS",
    "DEFAULT_OPERATION_TIMEOUT_SECONDS",
    "SLOW_OPERATION_THRESHOLD_MS",
    "JOURNEY_KEY_PREFIX",
    "CONVERSION_KEY_PREFIX",
    "CONVERSION_DATE_INDEX_PREFIX",
    "PAGEVIEW_IP_INDEX_PREFIX",
    "GEO_CACHE_PREFIX",
    "ATTRIBUTION_IP_PREFIX",
    "ATTRIBUTION_SESSION_PREFIX",
    "ATTRIBUTION_FINGERPRINT_PREFIX",
    "ATTRIBUTION_SCREEN_PREFIX",
    "ATTRIBUTION_WEBGL_PREFIX",
    "JOURNEY_BUILD_PROGRESS_KEY",
    "RECOVERY_PROGRESS_KEY",
    "JOURNEY_ANALYTICS_KEY",
    "STRICT_REPROCESSED_PREFIX",
    "IMPROVEMENT_REPROCESSED_PREFIX",
    "JOURNEY_TTL_SECONDS",
    "GEO_CACHE_TTL_SECONDS",
    "PROGRESS_TTL_SECONDS",
    "ANALYTICS_TTL_SECONDS",
    "STRICT_MARKER_TTL_SECONDS",
    "IMPROVEMENT_MARKER_TTL_SECONDS",
    "DEFAULT_SCAN_COUNT",
    "DEFAULT_SCAN_MAX_ITERATIONS",
]
