"""
Pageview model
"""

from datetime import datetime
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict

from ....core.exceptions import MalformedRecordError
from ....shared.constants.attribution import (
    CAMPAIGN_FIELDS,
    CANVAS_FINGERPRINT_FIELDS,
    LANDING_PAGE_FIELDS,
    MEDIUM_FIELDS,
    PAGEVIEW_IP_ADDRESS_FIELDS,
    SCREEN_RESOLUTION_FIELDS,
    WEBGL_SIGNATURE_FIELDS,
)
from ....shared.helpers.datetime_utils import coerce_timestamp, to_iso
from ....shared.helpers.ip_utils import split_ip_values
from ._fields import first_present, optional_str


class Pageview(BaseModel):
    """A recorded page visit. Immutable once recorded."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    ip_address: Optional[str] = None
    session_id: Optional[str] = None
    canvas_fingerprint: Optional[str] = None
    webgl_signature: Optional[str] = None
    screen_resolution: Optional[str] = None
    landing_page: Optional[str] = None
    source: Optional[str] = None
    medium: Optional[str] = None
    campaign: Optional[str] = None
    content: Optional[str] = None
    term: Optional[str] = None
    referrer_url: Optional[str] = None
    user_agent: Optional[str] = None

    # Store key the record was read from, if any
    record_key: Optional[str] = None

    @property
    def dedupe_key(self) -> str:
        """Identity used to collapse the same visit found through several signals"""
        return f"{to_iso(self.timestamp)}_{self.session_id or self.ip_address}"

    @classmethod
    def from_record(
        cls, raw: Mapping[str, Any], record_key: Optional[str] = None
    ) -> "Pageview":
        """
        Normalize a stored pageview record.

        Raises:
            MalformedRecordError: if the record is not a mapping or has no usable timestamp
        """
        if not isinstance(raw, Mapping):
            raise MalformedRecordError(
                "Pageview record is not an object",
                record_type="pageview",
                key=record_key,
                value=raw,
            )

        timestamp = coerce_timestamp(raw.get("timestamp"))
        if timestamp is None:
            raise MalformedRecordError(
                "Pageview record has no usable timestamp",
                record_type="pageview",
                field="timestamp",
                key=record_key,
                value=raw.get("timestamp"),
            )

        ips = split_ip_values(first_present(raw, PAGEVIEW_IP_ADDRESS_FIELDS))

        return cls(
            timestamp=timestamp,
            ip_address=ips[0] if ips else None,
            session_id=optional_str(raw.get("session_id")),
            canvas_fingerprint=optional_str(first_present(raw, CANVAS_FINGERPRINT_FIELDS)),
            webgl_signature=optional_str(first_present(raw, WEBGL_SIGNATURE_FIELDS)),
            screen_resolution=optional_str(first_present(raw, SCREEN_RESOLUTION_FIELDS)),
            landing_page=optional_str(first_present(raw, LANDING_PAGE_FIELDS)),
            source=optional_str(raw.get("source")),
            medium=optional_str(first_present(raw, MEDIUM_FIELDS)),
            campaign=optional_str(first_present(raw, CAMPAIGN_FIELDS)),
            content=optional_str(raw.get("content")),
            term=optional_str(raw.get("term")),
            referrer_url=optional_str(raw.get("referrer_url")),
            user_agent=optional_str(raw.get("user_agent")),
            record_key=record_key,
        )
