"""Helpers for asynchronous evaluation with cooperative cancellation."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Callable
from typing import Any, Protocol

from specwise._errors import OperationCancelledError


class CancelSignal(Protocol):
    """Anything shaped like ``asyncio.Event``."""

    def is_set(self) -> bool: ...

    async def wait(self) -> Any: ...


def raise_if_cancelled(cancel: CancelSignal | None) -> None:
    """Raise OperationCancelledError if ``cancel`` has been triggered."""
    if cancel is not None and cancel.is_set():
        raise OperationCancelledError("Evaluation was cancelled")


async def run_in_worker(
    fn: Callable[[Any], bool], entity: Any, cancel: CancelSignal | None = None
) -> bool:
    """
    Run ``fn(entity)`` in a worker thread.

    If ``cancel`` fires before the work finishes, the result is discarded
    and OperationCancelledError is raised.
    """
    raise_if_cancelled(cancel)
    work = asyncio.ensure_future(asyncio.to_thread(fn, entity))
    if cancel is None:
        return await work

    waiter = asyncio.ensure_future(cancel.wait())
    try:
        done, _ = await asyncio.wait(
            {work, waiter}, return_when=asyncio.FIRST_COMPLETED
        )
    except asyncio.CancelledError:
        work.cancel()
        raise
    finally:
        waiter.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await waiter

    if work in done:
        return work.result()

    work.cancel()
    raise OperationCancelledError("Evaluation was cancelled")
