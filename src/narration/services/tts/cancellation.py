"""Per-session cancellation token shared by synthesis and playback."""

from __future__ import annotations

import asyncio
from contextlib import suppress
from typing import Awaitable, TypeVar

from narration.errors import SynthesisCancelled

T = TypeVar("T")


class CancellationToken:
    """
    One-shot cancellation signal for a single playback session.

    A fresh token is created for every session and never reused. Work that
    must stop when the session stops is wrapped with :meth:`guard`, which
    races it against the token and cancels it the moment the token fires.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise SynthesisCancelled("Narration session was cancelled")

    async def wait(self) -> None:
        await self._event.wait()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """
        Await ``awaitable`` unless the token fires first.

        Raises SynthesisCancelled if the token is (or becomes) cancelled; the
        wrapped work is cancelled and awaited so nothing is left in flight. A
        result that arrives after cancellation is discarded.
        """
        if self.cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            self.raise_if_cancelled()

        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not work.done():
                work.cancel()
                with suppress(asyncio.CancelledError, Exception):
                    await work

        if self.cancelled:
            if not work.cancelled():
                # Retrieve so a late failure is not reported as unhandled
                work.exception()
            raise SynthesisCancelled("Narration session was cancelled")
        return work.result()


__all__ = ["CancellationToken"]
