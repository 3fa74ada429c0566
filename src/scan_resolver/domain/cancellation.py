"""Cooperative cancellation shared between a lookup and its deadline."""

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from scan_resolver.domain.errors import LookupAbortedError

T = TypeVar("T")


class CancellationToken:
    """One-shot cancellation signal observed by source clients."""

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self.reason: str | None = None

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self, reason: str = "cancelled") -> None:
        """Signal cancellation; later calls keep the first reason."""
        if self._event.is_set():
            return
        self.reason = reason
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise LookupAbortedError(self.reason or "cancelled")

    async def run(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the token fires first.

        The pending work is cancelled and LookupAbortedError raised as soon as
        the token is cancelled.
        """
        self.raise_if_cancelled()
        work = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._event.wait())
        try:
            await asyncio.wait({work, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            waiter.cancel()
            if not work.done():
                work.cancel()
        if work.cancelled() or not work.done():
            raise LookupAbortedError(self.reason or "cancelled")
        return work.result()
