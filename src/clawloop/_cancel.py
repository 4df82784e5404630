"""Cancellation helpers built on ``asyncio.Event`` signals."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import Awaitable

T = TypeVar("T")


async def run_cancellable(awaitable: Awaitable[T], cancel: asyncio.Event | None) -> T:
    """Await *awaitable*, aborting it as soon as *cancel* is set.

    Raises ``asyncio.CancelledError`` when the signal wins the race. The
    aborted task is awaited so no exception is left unobserved.
    """
    if cancel is None:
        return await awaitable

    task = asyncio.ensure_future(awaitable)
    if cancel.is_set():
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise asyncio.CancelledError("cancelled before start")

    waiter = asyncio.ensure_future(cancel.wait())
    try:
        done, _ = await asyncio.wait(
            {task, waiter}, return_when=asyncio.FIRST_COMPLETED
        )
    except asyncio.CancelledError:
        task.cancel()
        waiter.cancel()
        await asyncio.gather(task, waiter, return_exceptions=True)
        raise

    if task in done:
        waiter.cancel()
        await asyncio.gather(waiter, return_exceptions=True)
        return task.result()

    task.cancel()
    await asyncio.gather(task, return_exceptions=True)
    raise asyncio.CancelledError("cancelled by caller")


async def wait_cancellable(
    delay_s: float, *signals: asyncio.Event | None
) -> asyncio.Event | None:
    """Sleep for *delay_s* unless one of *signals* fires first.

    Returns the event that interrupted the wait, or ``None`` when the full
    delay elapsed.
    """
    events = [s for s in signals if s is not None]
    for event in events:
        if event.is_set():
            return event
    if not events:
        await asyncio.sleep(delay_s)
        return None

    waiters = {asyncio.ensure_future(e.wait()): e for e in events}
    try:
        done, _ = await asyncio.wait(
            waiters.keys(), timeout=delay_s, return_when=asyncio.FIRST_COMPLETED
        )
    finally:
        for w in waiters:
            w.cancel()
        await asyncio.gather(*waiters, return_exceptions=True)

    for w in done:
        return waiters[w]
    return None
