"""
Conversion Repository
"""

from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional

from ....core.config.settings import settings
from ....core.exceptions import MalformedRecordError, StorageError
from ....core.logging import get_logger
from ....shared.constants.redis import CONVERSION_DATE_INDEX_PREFIX, CONVERSION_KEY_PREFIX
from ....shared.helpers.batching import gather_in_batches
from ....shared.helpers.codec import decode_value, encode_value
from ....shared.helpers.redis_utils import scan_keys
from ..models import Conversion

logger = get_logger(__name__)


class ConversionRepository:
    """Repository for conversion records and their reprocessing markers"""

    def __init__(self, store, fan_out: Optional[int] = None):
        self.store = store
        self.fan_out = fan_out or settings.attribution.FAN_OUT_SIZE
        self.malformed_count = 0

    def _parse(self, raw: Any, key: Optional[str]) -> Optional[Conversion]:
        try:
            return Conversion.from_record(raw, storage_key=key)
        except MalformedRecordError as e:
            self.malformed_count += 1
            logger.warning("Skipping malformed conversion", key=key, error=e.message)
            return None

    async def get(self, key: str) -> Optional[Conversion]:
        try:
            raw = await self.store.get(key)
            if raw is None:
                return None
            payload = decode_value(raw, key=key, record_type="conversion")
        except MalformedRecordError as e:
            self.malformed_count += 1
            logger.warning("Skipping unparseable conversion", key=key, error=e.message)
            return None
        except StorageError as e:
            logger.warning("Conversion read failed", key=key, error=str(e))
            return None

        return self._parse(payload, key)

    async def load_recent(self, since: Optional[datetime] = None) -> List[Conversion]:
        """Conversions stored under ``conversions:*`` at or after ``since``, newest first"""
        keys = await scan_keys(
            self.store,
            f"{CONVERSION_KEY_PREFIX}*",
            count=settings.attribution.SCAN_COUNT,
            max_iterations=settings.attribution.SCAN_MAX_ITERATIONS,
        )

        conversions = await gather_in_batches(keys, self.get, self.fan_out)
        result = [
            conversion
            for conversion in conversions
            if conversion is not None and (since is None or conversion.timestamp >= since)
        ]
        result.sort(key=lambda conversion: conversion.timestamp, reverse=True)
        return result

    async def load_by_dates(self, dates: Iterable[date]) -> List[Conversion]:
        """Conversions embedded in the daily ``conversion_index_date:<YYYY-MM-DD>`` records"""
        conversions: List[Conversion] = []
        for day in dates:
            index_key = f"{CONVERSION_DATE_INDEX_PREFIX}{day.isoformat()}"
            try:
                raw = await self.store.get(index_key)
                if raw is None:
                    continue
                payload = decode_value(raw, key=index_key, record_type="conversion_index")
            except MalformedRecordError as e:
                self.malformed_count += 1
                logger.warning(
                    "Skipping unparseable conversion index", key=index_key, error=e.message
                )
                continue
            except StorageError as e:
                logger.warning("Conversion index read failed", key=index_key, error=str(e))
                continue

            records = payload.get("conversions", []) if isinstance(payload, dict) else []
            for position, record in enumerate(records):
                conversion = self._parse(record, None)
                if conversion is None:
                    logger.debug("Index entry skipped", key=index_key, position=position)
                    continue
                conversions.append(conversion)

        return conversions

    async def save_record(self, key: str, record: Dict[str, Any]) -> None:
        """Full-record overwrite of a conversion. Conversions do not expire."""
        await self.store.set(key, encode_value(record))

    async def has_marker(self, key: str) -> bool:
        try:
            return await self.store.get(key) is not None
        except StorageError as e:
            logger.warning("Marker read failed", key=key, error=str(e))
            return False

    async def set_marker(self, key: str, ttl_seconds: int, value: Dict[str, Any]) -> None:
        await self.store.setex(key, ttl_seconds, encode_value(value))
