"""Timeout helper applied to every external call made from a timer task."""

from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

T = TypeVar("T")


async def with_timeout(awaitable: Awaitable[T], seconds: float, what: str) -> T:
    """
    Await *awaitable* for at most *seconds*.

    Raises:
        TimeoutError: With *what* in the message so log lines name the stalled call.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError as exc:
        raise TimeoutError(f"{what} timed out after {seconds:.1f}s") from exc
