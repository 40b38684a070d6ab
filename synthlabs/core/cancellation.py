"""Cooperative cancellation shared by every call in a pipeline run."""

import asyncio
from typing import Awaitable, Optional, TypeVar

from .errors import OperationCancelledError

T = TypeVar("T")


class CancellationToken:
    """
    Abort signal checked at every retry, stream read, phase and turn.

    Besides the cooperative checks, `guard()` races an awaitable against the
    token so an in-flight request is cancelled as soon as the token fires.
    """

    def __init__(self):
        self._event = asyncio.Event()
        self.reason: Optional[str] = None

    def cancel(self, reason: str = "Operation cancelled") -> None:
        if not self._event.is_set():
            self.reason = reason
            self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise OperationCancelledError(self.reason or "Operation cancelled")

    async def wait(self) -> None:
        await self._event.wait()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await `awaitable`, cancelling it if the token fires first."""
        self.raise_if_cancelled()

        work = asyncio.ensure_future(awaitable)
        watcher = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({work, watcher}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            work.cancel()
            raise
        finally:
            watcher.cancel()

        if not work.done():
            work.cancel()
            try:
                await work
            except asyncio.CancelledError:
                pass
            self.raise_if_cancelled()

        return work.result()


async def guarded(awaitable: Awaitable[T], cancel: Optional[CancellationToken]) -> T:
    """Await with cancellation when a token is supplied, plainly otherwise."""
    if cancel is None:
        return await awaitable
    return await cancel.guard(awaitable)
