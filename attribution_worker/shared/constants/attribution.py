"""
Attribution domain constants
"""

# Geo sentinel and placeholder values
# ===========================================
LOOKUP_FAILED = "LOOKUP_FAILED"
UNKNOWN = "Unknown"
DEFAULT_COORDINATES = "0,0"

# Values dropped during IP extraction (compared lower-cased)
IGNORED_IP_VALUES = frozenset({"", "unknown", "null", "undefined", "none"})

# Conversion record field-name fallbacks, in priority order
# ===========================================
ORDER_ID_FIELDS = ("order_id", "conversion_order_id", "order_number")
EMAIL_FIELDS = ("email", "customer_email")
TIMESTAMP_FIELDS = ("timestamp", "conversion_timestamp", "created_at")
ORDER_TOTAL_FIELDS = ("order_total", "conversion_value", "total", "value")
SESSION_ID_FIELDS = ("session_id", "SSID", "sid")
DEVICE_SIGNATURE_FIELDS = ("device_signature", "dsig")
SCREEN_VALUE_FIELDS = ("screen_value", "SVV", "SVVV")
GPU_SIGNATURE_FIELDS = ("gpu_signature", "gsig")

PRIMARY_IP_FIELDS = ("primary_ip", "PIP", "custom_ipv6")
CONVERSION_IP_FIELDS = ("conversion_ip", "CIP", "custom_ipv4")
PAGEVIEW_IP_FIELDS = ("pageview_ip", "IP")
GENERIC_IP_FIELDS = ("ip_address", "ip")
UNIQUE_IPS_FIELD = "unique_ips"

# Pageview record field-name fallbacks
# ===========================================
PAGEVIEW_IP_ADDRESS_FIELDS = ("ip_address", "ip")
CANVAS_FINGERPRINT_FIELDS = ("canvas_fingerprint", "device_signature", "dsig")
WEBGL_SIGNATURE_FIELDS = ("webgl_signature", "gpu_signature", "gsig")
SCREEN_RESOLUTION_FIELDS = ("screen_resolution", "screen_value", "SVV")
LANDING_PAGE_FIELDS = ("landing_page", "url")
MEDIUM_FIELDS = ("medium", "utm_medium")
CAMPAIGN_FIELDS = ("campaign", "utm_campaign")

# Attribution fields cleared when an attribution is removed
ATTRIBUTION_FIELDS_TO_CLEAR = (
    "landing_page",
    "source",
    "utm_campaign",
    "utm_medium",
    "referrer_url",
)

# Journey reconstruction labels
# ===========================================
RECONSTRUCTION_MULTI_SIGNAL = "enhanced_multi_signal_attribution"
RECONSTRUCTION_CONVERSION_ONLY = "conversion_only"
RECONSTRUCTION_RECOVERY = "attribution_recovery_engine"
RECOVERY_METHOD_DUAL_IP = "enhanced_dual_ip_extraction"
CONVERSION_POINT_METHOD = "conversion_point"
CONVERSION_ONLY_METHOD = "conversion_only"
UNKNOWN_SOURCE = "unknown"

# Strict reprocessing labels
STRICT_METHOD = "strict_city_match_required"
STRICT_REMOVAL_REASON = "no_city_match_found"
