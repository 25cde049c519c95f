"""Async helpers shared by the retrieval and generation layers."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from tsrag.src.core.errors import UpstreamTimeout

T = TypeVar("T")


async def with_timeout(awaitable: Awaitable[T], timeout_seconds: float, operation: str) -> T:
    """
    Await *awaitable*, cancelling it after *timeout_seconds*.

    Raises
    ------
    UpstreamTimeout
        When the deadline passes; the pending call is cancelled.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_seconds)
    except asyncio.TimeoutError as exc:
        raise UpstreamTimeout(operation, timeout_seconds) from exc
