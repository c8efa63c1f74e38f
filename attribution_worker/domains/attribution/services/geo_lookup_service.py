"""
Geo Lookup Service

Resolves an IP to location and network owner. Results are cached in process
memory and in the shared store (``geo_cache:<ip>``). The service never raises:
every failure path yields the LOOKUP_FAILED sentinel record.
"""

import time
from collections import OrderedDict
from typing import Any, Callable, Dict, Iterable, Optional, Tuple

import httpx

from ....core.config.settings import settings
from ....core.exceptions import MalformedRecordError, StorageError
from ....core.logging import get_logger
from ....shared.constants.attribution import DEFAULT_COORDINATES, UNKNOWN
from ....shared.constants.redis import GEO_CACHE_PREFIX
from ....shared.decorators import async_timing
from ....shared.helpers.batching import gather_in_batches
from ....shared.helpers.codec import decode_value, encode_value
from ....shared.helpers.datetime_utils import now_utc, to_iso
from ....shared.helpers.ip_utils import dedupe_preserving_order, encode_ip_for_key
from ..models import GeoRecord

logger = get_logger(__name__)


class GeoMemoryCache:
    """Process-local TTL cache with least-recently-used eviction"""

    def __init__(
        self,
        max_size: int,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_size = max_size
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: "OrderedDict[str, Tuple[float, GeoRecord]]" = OrderedDict()

    def get(self, ip: str) -> Optional[GeoRecord]:
        entry = self._entries.get(ip)
        if entry is None:
            return None

        stored_at, record = entry
        if self._clock() - stored_at > self.ttl_seconds:
            del self._entries[ip]
            return None

        self._entries.move_to_end(ip)
        return record

    def put(self, ip: str, record: GeoRecord) -> None:
        if self.max_size <= 0:
            return
        self._entries[ip] = (self._clock(), record)
        self._entries.move_to_end(ip)
        while len(self._entries) > self.max_size:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


def _nested_name(payload: Dict[str, Any], field: str) -> Optional[str]:
    value = payload.get(field)
    if isinstance(value, dict):
        name = value.get("name")
        return name if name else None
    return None


def parse_provider_payload(ip: str, payload: Dict[str, Any]) -> GeoRecord:
    """Map an ipinfo-style JSON payload to a GeoRecord"""
    isp = (
        _nested_name(payload, "company")
        or _nested_name(payload, "asn")
        or payload.get("org")
        or _nested_name(payload, "carrier")
        or UNKNOWN
    )

    return GeoRecord(
        ip=ip,
        city=payload.get("city") or UNKNOWN,
        region=payload.get("region") or UNKNOWN,
        country=payload.get("country") or UNKNOWN,
        isp=isp,
        coordinates=payload.get("loc") or DEFAULT_COORDINATES,
        timezone=payload.get("timezone") or UNKNOWN,
        lookup_timestamp=to_iso(now_utc()),
    )


class GeoLookupService:
    """IP -> GeoRecord with a two-level cache and a bounded provider call"""

    def __init__(
        self,
        store=None,
        token: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
        cache_ttl_seconds: Optional[int] = None,
        enabled: Optional[bool] = None,
        memory_cache: Optional[GeoMemoryCache] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        fan_out: Optional[int] = None,
    ):
        geo = settings.geo
        self.store = store
        self.token = token if token is not None else geo.IPINFO_TOKEN
        self.base_url = (base_url or geo.IPINFO_BASE_URL).rstrip("/")
        self.timeout = httpx.Timeout(timeout_seconds or geo.GEO_LOOKUP_TIMEOUT)
        self.cache_ttl_seconds = cache_ttl_seconds or geo.GEO_CACHE_TTL_SECONDS
        self.enabled = geo.GEO_LOOKUP_ENABLED if enabled is None else enabled
        self.memory_cache = memory_cache or GeoMemoryCache(
            max_size=geo.GEO_MEMORY_CACHE_SIZE,
            ttl_seconds=geo.GEO_MEMORY_CACHE_TTL_SECONDS,
        )
        self.fan_out = fan_out or settings.attribution.FAN_OUT_SIZE
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_http_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
                headers={"Accept": "application/json"},
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "GeoLookupService":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    @staticmethod
    def cache_key(ip: str) -> str:
        return f"{GEO_CACHE_PREFIX}{encode_ip_for_key(ip)}"

    async def resolve(self, ip: Optional[str]) -> GeoRecord:
        """
        Resolve one IP.

        Order: memory cache, shared store cache, provider. Provider results are
        written back to both caches; failures are returned but never cached.
        """
        if not ip:
            return GeoRecord.lookup_failed(ip or "")

        cached = self.memory_cache.get(ip)
        if cached is not None:
            return cached

        stored = await self._read_store_cache(ip)
        if stored is not None:
            self.memory_cache.put(ip, stored)
            return stored

        if not self.enabled:
            return GeoRecord.lookup_failed(ip)

        record = await self._fetch_from_provider(ip)
        if record.is_lookup_failed:
            return record

        self.memory_cache.put(ip, record)
        await self._write_store_cache(ip, record)
        return record

    @async_timing(threshold_ms=2000)
    async def resolve_many(self, ips: Iterable[Optional[str]]) -> Dict[str, GeoRecord]:
        """Resolve several IPs with bounded concurrency. Keys are the distinct input IPs."""
        unique_ips = dedupe_preserving_order(ip for ip in ips if ip)
        records = await gather_in_batches(unique_ips, self.resolve, self.fan_out)
        return dict(zip(unique_ips, records))

    async def _read_store_cache(self, ip: str) -> Optional[GeoRecord]:
        if self.store is None:
            return None

        key = self.cache_key(ip)
        try:
            raw = await self.store.get(key)
            payload = decode_value(raw, key=key, record_type="geo_cache")
        except (StorageError, MalformedRecordError) as e:
            logger.warning("Geo cache read failed", ip=ip, error=str(e))
            return None

        if not isinstance(payload, dict):
            return None

        payload.setdefault("ip", ip)
        try:
            record = GeoRecord.model_validate(payload)
        except ValueError as e:
            logger.warning("Ignoring invalid geo cache entry", ip=ip, error=str(e))
            return None

        return None if record.is_lookup_failed else record

    async def _write_store_cache(self, ip: str, record: GeoRecord) -> None:
        if self.store is None:
            return
        try:
            await self.store.setex(
                self.cache_key(ip),
                self.cache_ttl_seconds,
                encode_value(record.model_dump()),
            )
        except StorageError as e:
            logger.debug("Geo cache write skipped", ip=ip, error=str(e))

    async def _fetch_from_provider(self, ip: str) -> GeoRecord:
        url = f"{self.base_url}/{ip}"
        try:
            response = await self._get_http_client().get(
                url, params={"token": self.token}
            )
        except httpx.TimeoutException:
            logger.warning("Geo lookup timed out", ip=ip)
            return GeoRecord.lookup_failed(ip)
        except httpx.HTTPError as e:
            logger.warning("Geo lookup request failed", ip=ip, error=str(e))
            return GeoRecord.lookup_failed(ip)

        if response.status_code != 200:
            logger.warning(
                "Geo lookup returned non-success status",
                ip=ip,
                status_code=response.status_code,
            )
            return GeoRecord.lookup_failed(ip)

        try:
            payload = response.json()
        except ValueError:
            logger.warning("Geo lookup returned invalid JSON", ip=ip)
            return GeoRecord.lookup_failed(ip)

        if not isinstance(payload, dict) or payload.get("bogon"):
            return GeoRecord.lookup_failed(ip)

        return parse_provider_payload(ip, payload)
