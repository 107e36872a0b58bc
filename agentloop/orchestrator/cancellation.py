"""Cooperative cancellation helpers."""

import asyncio
from typing import Optional

from agentloop.core.exceptions import TaskCancelledError


def is_cancelled(cancel_event: Optional[asyncio.Event]) -> bool:
    """Return True if the cancellation signal has been raised."""
    return cancel_event is not None and cancel_event.is_set()


def check_cancelled(cancel_event: Optional[asyncio.Event], where: str = "") -> None:
    """Raise TaskCancelledError if the cancellation signal has been raised."""
    if is_cancelled(cancel_event):
        suffix = f" {where}" if where else ""
        raise TaskCancelledError(f"Task cancelled{suffix}")


async def cancellable_sleep(delay: float, cancel_event: Optional[asyncio.Event]) -> None:
    """Sleep for ``delay`` seconds, waking early if cancellation is signalled.

    Raises:
        TaskCancelledError: If cancellation is signalled before or during the wait
    """
    check_cancelled(cancel_event, "before backoff")

    if delay <= 0:
        return

    if cancel_event is None:
        await asyncio.sleep(delay)
        return

    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=delay)
    except asyncio.TimeoutError:
        return

    raise TaskCancelledError("Task cancelled during backoff")
