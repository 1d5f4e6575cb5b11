from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

T = TypeVar("T")
R = TypeVar("R")


async def map_with_concurrency(
    items: Sequence[T],
    limit: int,
    worker: Callable[[T, int], Awaitable[R]],
) -> list[R]:
    """Apply an async worker to every item with at most `limit` calls in flight.

    Workers share a cursor: each one claims the next unclaimed index and stores
    its result in that slot, so `results[i]` always belongs to `items[i]` whatever
    the completion order. The first failure cancels the remaining workers and
    propagates.

    Args:
        items (Sequence[T]): the items to process
        limit (int): maximum number of concurrent worker invocations
        worker (Callable[[T, int], Awaitable[R]]): coroutine function called with (item, index)

    Raises:
        ValueError: if `limit` is lower than 1

    Returns:
        list[R]: the results, positionally aligned with `items`
    """
    if limit < 1:
        msg = "Concurrency limit must be at least 1"
        raise ValueError(msg)

    results: list[R | None] = [None] * len(items)
    cursor = 0

    async def runner() -> None:
        nonlocal cursor
        while cursor < len(items):
            current = cursor
            cursor += 1
            results[current] = await worker(items[current], current)

    tasks = [asyncio.ensure_future(runner()) for _ in range(min(limit, len(items)))]
    try:
        await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
    return results  # type: ignore[return-value]
