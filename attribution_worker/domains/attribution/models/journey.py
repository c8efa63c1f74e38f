"""
Customer journey models
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from ....shared.helpers.datetime_utils import to_iso


class JourneyState(str, Enum):
    """Lifecycle label of a stored journey"""

    ATTRIBUTED = "attributed"
    CONVERSION_ONLY = "conversion_only"
    RECOVERY_FOUND = "recovery_found"
    RECOVERY_NOT_FOUND = "recovery_not_found"
    ATTRIBUTION_REMOVED = "attribution_removed"


class TouchpointType(str, Enum):
    PAGEVIEW = "pageview"
    CONVERSION = "conversion"


class Touchpoint(BaseModel):
    """One step of a journey: an attributed pageview or the conversion itself"""

    touchpoint_id: str
    timestamp: datetime
    type: TouchpointType = TouchpointType.PAGEVIEW

    landing_page: Optional[str] = None
    source: Optional[str] = None
    medium: Optional[str] = None
    campaign: Optional[str] = None
    content: Optional[str] = None
    term: Optional[str] = None
    referrer_url: Optional[str] = None

    attribution_method: Optional[str] = None
    confidence: float = 0
    matched_ip: Optional[str] = None
    recovery_method: Optional[str] = None

    ip_address: Optional[str] = None
    session_id: Optional[str] = None
    canvas_fingerprint: Optional[str] = None
    screen_resolution: Optional[str] = None
    user_agent: Optional[str] = None

    # Conversion touchpoint only
    order_id: Optional[str] = None
    order_total: Optional[float] = None
    email: Optional[str] = None

    touchpoint_position: int = 0
    is_first_touchpoint: bool = False
    is_last_touchpoint: bool = False
    is_conversion: bool = False

    @property
    def dedupe_key(self) -> str:
        return f"{to_iso(self.timestamp)}_{self.session_id or self.ip_address}"


class Journey(BaseModel):
    """Reconstructed path from first attributed touch to a conversion"""

    journey_id: str
    conversion_order_id: str
    customer_email: str = ""
    conversion_value: float = 0.0
    conversion_timestamp: datetime
    journey_start: datetime
    journey_end: Optional[datetime] = None
    journey_span_hours: float = 0.0
    total_touchpoints: int = 0
    touchpoints: List[Touchpoint] = Field(default_factory=list)

    unique_sessions: int = 0
    unique_device_fingerprints: int = 0
    cross_session_journey: bool = False
    cross_device_journey: bool = False
    unique_sources: List[str] = Field(default_factory=list)
    first_click_source: Optional[str] = None
    last_click_source: Optional[str] = None
    attribution_confidence_avg: float = 0.0

    reconstruction_method: str
    journey_state: JourneyState = JourneyState.ATTRIBUTED
    created_at: Optional[datetime] = None

    # Recovery audit
    recovery_attempted: bool = False
    recovery_timestamp: Optional[datetime] = None
    recovery_method: Optional[str] = None
    recovered_pageviews: Optional[int] = None
    removed_attribution: Optional[Dict[str, Any]] = None

    @property
    def pageview_touchpoints(self) -> List[Touchpoint]:
        return [tp for tp in self.touchpoints if not tp.is_conversion]

    @property
    def conversion_touchpoint(self) -> Optional[Touchpoint]:
        for tp in reversed(self.touchpoints):
            if tp.is_conversion:
                return tp
        return None

    def to_record(self) -> Dict[str, Any]:
        """JSON-compatible form used for storage"""
        return self.model_dump(mode="json")
