"""Bounded fan-out for independent async work."""

from __future__ import annotations

import asyncio
import os
from collections.abc import Awaitable, Callable, Sequence
from typing import TypeVar

T = TypeVar("T")


def default_worker_count() -> int:
    """One worker per available CPU, at least one."""
    return max(1, os.cpu_count() or 1)


async def gather_bounded(
    factories: Sequence[Callable[[], Awaitable[T]]],
    *,
    limit: int = 0,
) -> list[T]:
    """Run every factory with at most ``limit`` in flight; keep input order.

    If any task fails or the caller is cancelled, the remaining tasks are
    cancelled before the error propagates, so no work outlives the call.
    """
    workers = limit if limit > 0 else default_worker_count()
    semaphore = asyncio.Semaphore(workers)

    async def _run(factory: Callable[[], Awaitable[T]]) -> T:
        async with semaphore:
            return await factory()

    tasks = [asyncio.ensure_future(_run(factory)) for factory in factories]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
