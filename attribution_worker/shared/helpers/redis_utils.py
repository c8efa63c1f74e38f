"""
Store access helpers shared by repositories
"""

from typing import List

from ...core.logging import get_logger
from ..constants.redis import DEFAULT_SCAN_COUNT, DEFAULT_SCAN_MAX_ITERATIONS

logger = get_logger(__name__)


async def scan_keys(
    client,
    pattern: str,
    count: int = DEFAULT_SCAN_COUNT,
    max_iterations: int = DEFAULT_SCAN_MAX_ITERATIONS,
) -> List[str]:
    """
    Collect keys matching ``pattern`` with a bounded number of SCAN pages.

    Keys are de-duplicated (SCAN may return a key more than once) and keep
    first-seen order.
    """
    seen = set()
    keys: List[str] = []
    cursor = 0
    iterations = 0

    while True:
        cursor, page = await client.scan(cursor, match=pattern, count=count)
        iterations += 1
        for key in page:
            if key not in seen:
                seen.add(key)
                keys.append(key)

        if cursor == 0:
            break
        if iterations >= max_iterations:
            logger.warning(
                "Scan stopped at iteration cap",
                pattern=pattern,
                iterations=iterations,
                keys_found=len(keys),
            )
            break

    return keys
