"""
Reliability utilities.

Every call into a persistence or downstream collaborator is bounded in time.
"""

import asyncio
from typing import Awaitable, TypeVar

from booking_backend.app.core.exceptions import OperationTimeoutError

T = TypeVar("T")


async def bounded(awaitable: Awaitable[T], timeout_seconds: float, operation: str) -> T:
    """
    Await ``awaitable`` for at most ``timeout_seconds``.

    Raises:
        OperationTimeoutError: if the bound is exceeded. The inner task is
        cancelled; the caller simply stops waiting.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_seconds)
    except asyncio.TimeoutError:
        raise OperationTimeoutError(operation, timeout_seconds)
