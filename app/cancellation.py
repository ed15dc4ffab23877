"""
app/cancellation.py

Cooperative cancellation for one pipeline run.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Iterable, TypeVar

T = TypeVar("T")


class PipelineCancelledError(Exception):
    """
    Raised at a checkpoint once the run's token has been cancelled.
    """


class CancellationToken:
    """
    One-shot cancellation flag checked at batch, row, page and request boundaries.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True
        self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise PipelineCancelledError("Pipeline run was cancelled.")

    async def sleep(self, seconds: float) -> None:
        """
        Pacing delay that ends early when the token is cancelled.
        """

        self.raise_if_cancelled()
        if seconds > 0:
            try:
                await asyncio.wait_for(self._event.wait(), timeout=seconds)
            except asyncio.TimeoutError:
                pass
        self.raise_if_cancelled()


def checkpoint(token: CancellationToken | None) -> None:
    if token is not None:
        token.raise_if_cancelled()


async def pace(token: CancellationToken | None, seconds: float) -> None:
    if token is not None:
        await token.sleep(seconds)
    elif seconds > 0:
        await asyncio.sleep(seconds)


async def gather_or_cancel(awaitables: Iterable[Awaitable[T]]) -> list[T]:
    """
    Like `asyncio.gather`, but when one awaitable fails the others are cancelled and awaited.
    """

    tasks = [asyncio.ensure_future(awaitable) for awaitable in awaitables]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            if not task.done():
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
