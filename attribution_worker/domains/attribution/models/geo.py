"""
Geographic lookup record
"""

from typing import Optional

from pydantic import BaseModel

from ....shared.constants.attribution import DEFAULT_COORDINATES, LOOKUP_FAILED, UNKNOWN


class GeoRecord(BaseModel):
    """Location and network owner for one IP"""

    ip: str
    city: str = UNKNOWN
    region: str = UNKNOWN
    country: str = UNKNOWN
    isp: str = UNKNOWN
    coordinates: str = DEFAULT_COORDINATES
    timezone: str = UNKNOWN
    lookup_timestamp: Optional[str] = None

    @property
    def is_lookup_failed(self) -> bool:
        return LOOKUP_FAILED in (self.city, self.region, self.country, self.isp)

    @classmethod
    def lookup_failed(cls, ip: str) -> "GeoRecord":
        """Sentinel returned whenever the provider cannot resolve an IP"""
        return cls(
            ip=ip,
            city=LOOKUP_FAILED,
            region=LOOKUP_FAILED,
            country=LOOKUP_FAILED,
            isp=LOOKUP_FAILED,
            coordinates=DEFAULT_COORDINATES,
            timezone=UNKNOWN,
        )
