"""
Progress Repository

Persists batch-driver progress records and run summaries.
"""

from typing import Any, Dict, Optional

from ....core.config.settings import settings
from ....core.exceptions import MalformedRecordError
from ....core.logging import get_logger
from ....shared.helpers.codec import decode_value, encode_value

logger = get_logger(__name__)


class ProgressRepository:
    """Repository for job progress and summary records"""

    def __init__(self, store, ttl_seconds: Optional[int] = None):
        self.store = store
        self.ttl_seconds = ttl_seconds or settings.attribution.PROGRESS_TTL_SECONDS

    async def load(self, key: str) -> Optional[Dict[str, Any]]:
        raw = await self.store.get(key)
        try:
            payload = decode_value(raw, key=key, record_type="progress")
        except MalformedRecordError as e:
            logger.warning("Discarding unreadable progress record", key=key, error=e.message)
            return None
        return payload if isinstance(payload, dict) else None

    async def save(
        self, key: str, record: Dict[str, Any], ttl_seconds: Optional[int] = None
    ) -> None:
        await self.store.setex(key, ttl_seconds or self.ttl_seconds, encode_value(record))

    async def clear(self, key: str) -> None:
        await self.store.delete(key)
