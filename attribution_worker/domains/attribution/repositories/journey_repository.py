"""
Journey Repository

Journeys are stored as full records under ``customer_journey:<journey_id>``
with a 30-day expiry that is refreshed on every write.
"""

from typing import Any, Dict, Iterable, List, Optional, Set, Tuple

from ....core.config.settings import settings
from ....core.exceptions import MalformedRecordError, StorageError
from ....core.logging import get_logger
from ....shared.constants.redis import JOURNEY_KEY_PREFIX
from ....shared.helpers.batching import chunked, gather_in_batches
from ....shared.helpers.codec import decode_value, encode_value
from ....shared.helpers.redis_utils import scan_keys
from ..models import Journey

logger = get_logger(__name__)


class JourneyRepository:
    """Repository for customer journey records"""

    def __init__(
        self,
        store,
        ttl_seconds: Optional[int] = None,
        fan_out: Optional[int] = None,
    ):
        self.store = store
        self.ttl_seconds = ttl_seconds or settings.attribution.JOURNEY_TTL_SECONDS
        self.fan_out = fan_out or settings.attribution.FAN_OUT_SIZE
        self.malformed_count = 0

    @staticmethod
    def key_for(journey: Journey) -> str:
        return f"{JOURNEY_KEY_PREFIX}{journey.journey_id}"

    async def save(self, journey: Journey, key: Optional[str] = None) -> str:
        """Overwrite the whole journey record and refresh its expiry"""
        key = key or self.key_for(journey)
        await self.store.setex(key, self.ttl_seconds, encode_value(journey.to_record()))
        return key

    async def save_verified(self, journey: Journey, key: Optional[str] = None) -> bool:
        """Save, then read back and confirm the stored touchpoint count"""
        key = await self.save(journey, key)
        stored = await self.get(key)
        verified = (
            stored is not None
            and stored.journey_id == journey.journey_id
            and stored.total_touchpoints == journey.total_touchpoints
        )
        if not verified:
            logger.error(
                "Journey write verification failed",
                key=key,
                expected_touchpoints=journey.total_touchpoints,
                stored_touchpoints=stored.total_touchpoints if stored else None,
            )
        return verified

    async def get_record(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            raw = await self.store.get(key)
            if raw is None:
                return None
            payload = decode_value(raw, key=key, record_type="journey")
        except MalformedRecordError as e:
            self.malformed_count += 1
            logger.warning("Skipping unparseable journey", key=key, error=e.message)
            return None
        except StorageError as e:
            logger.warning("Journey read failed", key=key, error=str(e))
            return None

        return payload if isinstance(payload, dict) else None

    async def get(self, key: str) -> Optional[Journey]:
        record = await self.get_record(key)
        if record is None:
            return None
        try:
            return Journey.model_validate(record)
        except ValueError as e:
            self.malformed_count += 1
            logger.warning("Skipping invalid journey", key=key, error=str(e))
            return None

    async def list_keys(self) -> List[str]:
        return await scan_keys(
            self.store,
            f"{JOURNEY_KEY_PREFIX}*",
            count=settings.attribution.SCAN_COUNT,
            max_iterations=settings.attribution.SCAN_MAX_ITERATIONS,
        )

    async def load_all(self) -> List[Tuple[str, Journey]]:
        keys = await self.list_keys()
        journeys = await gather_in_batches(keys, self.get, self.fan_out)
        return [(key, journey) for key, journey in zip(keys, journeys) if journey is not None]

    async def load_all_records(self) -> List[Tuple[str, Dict[str, Any]]]:
        """Raw journey records, for maintenance scans that must tolerate old shapes"""
        keys = await self.list_keys()
        records = await gather_in_batches(keys, self.get_record, self.fan_out)
        return [(key, record) for key, record in zip(keys, records) if record is not None]

    async def existing_order_ids(self) -> Set[str]:
        order_ids = set()
        for _, record in await self.load_all_records():
            order_id = record.get("conversion_order_id")
            if order_id is not None:
                order_ids.add(str(order_id))
        return order_ids

    async def delete(self, keys: Iterable[str], batch_size: Optional[int] = None) -> int:
        """Delete keys in fixed-size batches; returns the number removed"""
        keys = list(keys)
        batch_size = batch_size or settings.attribution.CLEANUP_DELETE_BATCH_SIZE
        removed = 0
        for batch in chunked(keys, batch_size):
            removed += await self.store.delete(*batch)
        return removed
