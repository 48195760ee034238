"""Timeout helpers for network-facing probe steps."""
import asyncio
from typing import Awaitable, TypeVar

T = TypeVar('T')


class ProbeTimeoutError(TimeoutError):
    """A labeled probe step did not finish in time."""

    def __init__(self, label: str, timeout_ms: int):
        self.label = label
        self.timeout_ms = timeout_ms
        super().__init__(f"{label} timed out after {timeout_ms}ms")


async def with_timeout(aw: Awaitable[T], timeout_ms: int, label: str) -> T:
    """Await ``aw`` for at most ``timeout_ms`` milliseconds.

    On timeout the underlying task is cancelled, so transports opened by it are
    closed, and ``ProbeTimeoutError`` is raised with the given label.
    """
    try:
        return await asyncio.wait_for(aw, timeout=timeout_ms / 1000)
    except asyncio.TimeoutError:
        raise ProbeTimeoutError(label, timeout_ms) from None
