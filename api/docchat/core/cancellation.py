"""
Cooperative cancellation for in-flight uploads and queries.

A token is checked before every network call and raced against every
await that may take unbounded time, so a "new chat" stops work promptly.
"""

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from docchat.core.errors import OperationCancelledError

T = TypeVar("T")


class CancellationToken:
    """One-shot cancellation signal shared by a single unit of work."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelledError("Operation cancelled")

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """
        Await `awaitable` unless the token fires first.

        Raises:
            OperationCancelledError: If the token is or becomes cancelled.
                The pending awaitable is cancelled in that case.
        """
        if self.cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            self.raise_if_cancelled()
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not task.done():
                task.cancel()
        if not task.done() or task.cancelled():
            raise OperationCancelledError("Operation cancelled")
        return task.result()

    async def sleep(self, seconds: float) -> None:
        """Sleep for `seconds`, waking early with an error on cancellation."""
        await self.guard(asyncio.sleep(seconds))
