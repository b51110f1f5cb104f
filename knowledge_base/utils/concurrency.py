"""Timeout helpers for calls that leave the process.

Every embedding, vector index and object store call is awaited under an
explicit deadline.  Blocking SDK calls (chromadb, boto3) run on a worker
thread so the event loop keeps serving other requests.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

T = TypeVar("T")


async def with_timeout(awaitable: Awaitable[T], timeout: float | None) -> T:
    """Await *awaitable*, raising :class:`asyncio.TimeoutError` after *timeout* seconds.

    A ``None`` or non-positive timeout waits indefinitely.  Cancellation of
    the calling task propagates into *awaitable* unchanged.
    """
    if timeout is None or timeout <= 0:
        return await awaitable
    return await asyncio.wait_for(awaitable, timeout=timeout)


async def run_blocking(
    func: Callable[..., T],
    *args: Any,
    timeout: float | None = None,
    **kwargs: Any,
) -> T:
    """Run a synchronous SDK call on a worker thread under an optional deadline."""
    return await with_timeout(asyncio.to_thread(func, *args, **kwargs), timeout)
