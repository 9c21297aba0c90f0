"""Cooperative abort signal shared by the orchestrator and the inference client."""

from __future__ import annotations

import asyncio
from typing import Awaitable, TypeVar

from .errors import RequestCancelled

__all__ = ["AbortSignal"]

T = TypeVar("T")


class AbortSignal:
    """One-shot cancellation flag with interruptible waits.

    ``abort()`` may be called from any coroutine on the loop (or from a signal
    handler via ``loop.call_soon_threadsafe``). Once tripped it stays tripped.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def aborted(self) -> bool:
        return self._event.is_set()

    def abort(self, reason: str | None = None) -> None:
        if self._event.is_set():
            return
        self.reason = reason
        self._event.set()

    def raise_if_aborted(self) -> None:
        if self._event.is_set():
            raise RequestCancelled(self.reason or "aborted")

    async def wait(self) -> None:
        await self._event.wait()

    async def sleep(self, delay: float) -> None:
        """Sleep for ``delay`` seconds, raising :class:`RequestCancelled` if aborted first."""

        self.raise_if_aborted()
        if delay <= 0:
            return
        try:
            await asyncio.wait_for(self._event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            return
        self.raise_if_aborted()

    async def wrap(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the signal trips first, in which case it is cancelled."""

        if self._event.is_set():
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            self.raise_if_aborted()
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()
        if task.done():
            return task.result()
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        raise RequestCancelled(self.reason or "aborted")
