from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable

from .logging import log_event


async def guarded_call(
    action: Callable[[], Awaitable[Any] | Any],
    *,
    logger: logging.Logger,
    event: str,
    message: str,
    level: str = "warning",
    **fields: Any,
) -> bool:
    """Run a best-effort cleanup step; failures are logged, never raised."""
    try:
        outcome = action()
        if inspect.isawaitable(outcome):
            await outcome
    except asyncio.CancelledError:
        raise
    except Exception as error:
        log_event(logger, level=level, event=event, message=message, error=str(error), **fields)
        return False
    return True


async def gather_or_cancel(*awaitables: Awaitable[Any]) -> list[Any]:
    """Like ``asyncio.gather`` but the first failure cancels and reaps the siblings."""
    tasks = [asyncio.ensure_future(awaitable) for awaitable in awaitables]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


async def wait_with_stop(stop_event: asyncio.Event, timeout_seconds: float) -> None:
    if timeout_seconds <= 0:
        return

    try:
        await asyncio.wait_for(stop_event.wait(), timeout=timeout_seconds)
    except asyncio.TimeoutError:
        pass
