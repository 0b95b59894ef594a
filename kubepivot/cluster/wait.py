"""Bounded polling."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

from kubepivot.errors import WaitTimeoutError


async def poll_immediate(
    interval: float,
    timeout: float,
    condition: Callable[[], Awaitable[bool]],
    what: str = "condition",
) -> None:
    """Evaluate *condition* now, then every *interval* seconds, until it returns True.

    An exception raised by *condition* aborts the poll and propagates.

    Raises:
        WaitTimeoutError -- *condition* was still False after *timeout* seconds.
    """
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        if await condition():
            return
        remaining = deadline - loop.time()
        if remaining <= 0:
            raise WaitTimeoutError(f"timed out after {timeout:g}s waiting for {what}")
        await asyncio.sleep(min(interval, remaining))
