"""
Conversion model and ingestion-time normalization
"""

from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from pydantic import BaseModel, Field

from ....core.exceptions import MalformedRecordError
from ....shared.constants.attribution import (
    CONVERSION_IP_FIELDS,
    DEVICE_SIGNATURE_FIELDS,
    EMAIL_FIELDS,
    GPU_SIGNATURE_FIELDS,
    ORDER_ID_FIELDS,
    ORDER_TOTAL_FIELDS,
    PAGEVIEW_IP_FIELDS,
    PRIMARY_IP_FIELDS,
    SCREEN_VALUE_FIELDS,
    SESSION_ID_FIELDS,
    TIMESTAMP_FIELDS,
)
from ....shared.helpers.datetime_utils import coerce_timestamp
from ....shared.helpers.ip_utils import extract_ips, first_ip
from ._fields import first_present, optional_str


class Conversion(BaseModel):
    """A purchase with the identity signals captured at checkout"""

    order_id: str
    email: str = ""
    timestamp: datetime
    order_total: float = 0.0

    # Identity signals
    session_id: Optional[str] = None
    device_signature: Optional[str] = None
    screen_value: Optional[str] = None
    gpu_signature: Optional[str] = None
    primary_ip: Optional[str] = None
    conversion_ip: Optional[str] = None
    pageview_ip: Optional[str] = None
    ip_addresses: List[str] = Field(default_factory=list)

    # Current attribution annotation
    attribution_found: bool = False
    attribution_method: Optional[str] = None
    landing_page: Optional[str] = None
    source: Optional[str] = None
    utm_campaign: Optional[str] = None
    utm_medium: Optional[str] = None
    referrer_url: Optional[str] = None
    attribution_improvement: Dict[str, Any] = Field(default_factory=dict)

    # Provenance for full-record rewrites
    storage_key: Optional[str] = None
    raw: Dict[str, Any] = Field(default_factory=dict, exclude=True, repr=False)

    @property
    def improvement_confidence(self) -> Optional[str]:
        return self.attribution_improvement.get("confidence")

    @property
    def priority_level(self) -> Optional[int]:
        level = self.attribution_improvement.get("priority_level")
        try:
            return int(level) if level is not None else None
        except (TypeError, ValueError):
            return None

    @classmethod
    def from_record(
        cls, raw: Mapping[str, Any], storage_key: Optional[str] = None
    ) -> "Conversion":
        """
        Normalize a raw conversion record once, at ingestion.

        Each canonical field is read from an ordered list of historical field
        names; downstream code only ever sees the canonical names.

        Raises:
            MalformedRecordError: when the order id or timestamp is missing
        """
        if not isinstance(raw, Mapping):
            raise MalformedRecordError(
                "Conversion record is not an object",
                record_type="conversion",
                key=storage_key,
                value=raw,
            )

        order_id = optional_str(first_present(raw, ORDER_ID_FIELDS))
        if order_id is None:
            raise MalformedRecordError(
                "Conversion record has no order id",
                record_type="conversion",
                field="order_id",
                key=storage_key,
            )

        timestamp = coerce_timestamp(first_present(raw, TIMESTAMP_FIELDS))
        if timestamp is None:
            raise MalformedRecordError(
                "Conversion record has no usable timestamp",
                record_type="conversion",
                field="timestamp",
                key=storage_key,
                value=first_present(raw, TIMESTAMP_FIELDS),
            )

        email = optional_str(first_present(raw, EMAIL_FIELDS)) or ""

        try:
            order_total = float(first_present(raw, ORDER_TOTAL_FIELDS) or 0)
        except (TypeError, ValueError):
            order_total = 0.0

        improvement = raw.get("attribution_improvement")

        return cls(
            order_id=order_id,
            email=email.lower(),
            timestamp=timestamp,
            order_total=order_total,
            session_id=optional_str(first_present(raw, SESSION_ID_FIELDS)),
            device_signature=optional_str(first_present(raw, DEVICE_SIGNATURE_FIELDS)),
            screen_value=optional_str(first_present(raw, SCREEN_VALUE_FIELDS)),
            gpu_signature=optional_str(first_present(raw, GPU_SIGNATURE_FIELDS)),
            primary_ip=first_ip(raw, PRIMARY_IP_FIELDS) or None,
            conversion_ip=first_ip(raw, CONVERSION_IP_FIELDS) or None,
            pageview_ip=first_ip(raw, PAGEVIEW_IP_FIELDS) or None,
            ip_addresses=extract_ips(raw),
            attribution_found=bool(raw.get("attribution_found")),
            attribution_method=optional_str(raw.get("attribution_method")),
            landing_page=optional_str(raw.get("landing_page")),
            source=optional_str(raw.get("source")),
            utm_campaign=optional_str(raw.get("utm_campaign")),
            utm_medium=optional_str(raw.get("utm_medium")),
            referrer_url=optional_str(raw.get("referrer_url")),
            attribution_improvement=dict(improvement) if isinstance(improvement, Mapping) else {},
            storage_key=storage_key,
            raw=dict(raw),
        )
