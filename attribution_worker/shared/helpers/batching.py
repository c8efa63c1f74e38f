"""
Bounded fan-out helpers
"""

import asyncio
from typing import Awaitable, Callable, Iterable, List, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")


def chunked(items: Sequence[T], size: int) -> Iterable[Sequence[T]]:
    """Yield consecutive slices of at most ``size`` items"""
    if size <= 0:
        raise ValueError("chunk size must be positive")
    for start in range(0, len(items), size):
        yield items[start : start + size]


async def gather_in_batches(
    items: Sequence[T],
    func: Callable[[T], Awaitable[R]],
    batch_size: int,
) -> List[R]:
    """
    Run ``func`` over ``items`` with at most ``batch_size`` calls in flight.

    Each batch is awaited together before the next one starts. Results keep
    the input order. Exceptions propagate; callers that must degrade per item
    catch inside ``func``.
    """
    results: List[R] = []
    for batch in chunked(items, batch_size):
        results.extend(await asyncio.gather(*(func(item) for item in batch)))
    return results
