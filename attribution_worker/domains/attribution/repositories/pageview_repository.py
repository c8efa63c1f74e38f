"""
Pageview Repository

Read-only access to pageview records through the reverse-index pointers
(``attribution_<signal>_<value>`` -> record key) and the grouped per-IP index
(``pageview_index_ip:<ip>``). The store offers no range queries, so windowed
loads scan the IP index with a bounded number of pages.
"""

from datetime import datetime
from typing import Any, List, Optional

from ....core.config.settings import settings
from ....core.exceptions import MalformedRecordError, StorageError
from ....core.logging import get_logger
from ....shared.constants.redis import ATTRIBUTION_IP_PREFIX, PAGEVIEW_IP_INDEX_PREFIX
from ....shared.helpers.batching import gather_in_batches
from ....shared.helpers.codec import decode_pointer, decode_value
from ....shared.helpers.ip_utils import encode_ip_for_key
from ....shared.helpers.redis_utils import scan_keys
from ..models import Pageview

logger = get_logger(__name__)


class PageviewRepository:
    """Repository for pageview lookups"""

    def __init__(self, store, fan_out: Optional[int] = None):
        self.store = store
        self.fan_out = fan_out or settings.attribution.FAN_OUT_SIZE
        self.malformed_count = 0

    def _parse(self, raw: Any, key: Optional[str]) -> Optional[Pageview]:
        try:
            return Pageview.from_record(raw, record_key=key)
        except MalformedRecordError as e:
            self.malformed_count += 1
            logger.warning("Skipping malformed pageview", key=key, error=e.message)
            return None

    async def get(self, key: str) -> Optional[Pageview]:
        """Load one pageview record. Unreadable records are skipped, not raised."""
        try:
            raw = await self.store.get(key)
            if raw is None:
                return None
            payload = decode_value(raw, key=key, record_type="pageview")
        except MalformedRecordError as e:
            self.malformed_count += 1
            logger.warning("Skipping unparseable pageview", key=key, error=e.message)
            return None
        except StorageError as e:
            logger.warning("Pageview read failed", key=key, error=str(e))
            return None

        return self._parse(payload, key)

    async def find_by_pointer(self, prefix: str, value: str) -> List[Pageview]:
        """Follow a reverse-index pointer to the pageview record(s) it names"""
        pointer_key = f"{prefix}{value}"
        try:
            raw = await self.store.get(pointer_key)
        except StorageError as e:
            logger.warning("Pointer read failed", key=pointer_key, error=str(e))
            return []

        record_keys = decode_pointer(raw)
        if not record_keys:
            return []

        pageviews = await gather_in_batches(record_keys, self.get, self.fan_out)
        return [pageview for pageview in pageviews if pageview is not None]

    async def get_ip_index(self, index_key: str) -> List[Pageview]:
        """Pageviews embedded in one grouped IP index record"""
        try:
            raw = await self.store.get(index_key)
            if raw is None:
                return []
            payload = decode_value(raw, key=index_key, record_type="pageview_index")
        except MalformedRecordError as e:
            self.malformed_count += 1
            logger.warning("Skipping unparseable IP index", key=index_key, error=e.message)
            return []
        except StorageError as e:
            logger.warning("IP index read failed", key=index_key, error=str(e))
            return []

        if isinstance(payload, dict):
            records = payload.get("pageviews") or []
        elif isinstance(payload, list):
            records = payload
        else:
            records = []

        pageviews = []
        for position, record in enumerate(records):
            pageview = self._parse(record, f"{index_key}#{position}")
            if pageview is not None:
                pageviews.append(pageview)
        return pageviews

    async def find_by_ip(self, ip: str) -> List[Pageview]:
        """Pageviews recorded for an IP through both the pointer and the grouped index"""
        encoded = encode_ip_for_key(ip)
        from_pointer = await self.find_by_pointer(ATTRIBUTION_IP_PREFIX, encoded)
        from_index = await self.get_ip_index(f"{PAGEVIEW_IP_INDEX_PREFIX}{encoded}")
        return from_pointer + from_index

    async def load_window(self, start: datetime, end: datetime) -> List[Pageview]:
        """
        Every indexed pageview with ``start <= timestamp <= end``.

        Scans ``pageview_index_ip:*`` with the configured page size and
        iteration cap. A failure to scan at all propagates; individual index
        records that cannot be read are skipped.
        """
        index_keys = await scan_keys(
            self.store,
            f"{PAGEVIEW_IP_INDEX_PREFIX}*",
            count=settings.attribution.SCAN_COUNT,
            max_iterations=settings.attribution.SCAN_MAX_ITERATIONS,
        )

        groups = await gather_in_batches(index_keys, self.get_ip_index, self.fan_out)

        seen = set()
        pageviews: List[Pageview] = []
        for group in groups:
            for pageview in group:
                if not start <= pageview.timestamp <= end:
                    continue
                if pageview.dedupe_key in seen:
                    continue
                seen.add(pageview.dedupe_key)
                pageviews.append(pageview)

        logger.info(
            "Loaded pageview window",
            index_keys=len(index_keys),
            pageviews=len(pageviews),
        )
        return pageviews
