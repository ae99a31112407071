"""
Simulated downstream latency.

The wait is an asyncio suspension point, so the event loop keeps serving
other requests while one handler is delayed. If the client goes away first
the timer is cancelled instead of firing against a closed connection.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

from fastapi import Request

logger = logging.getLogger("smartops.delay")


async def _wait_for_disconnect(request: Request) -> None:
    # The request body (empty for these endpoints) is drained first; after
    # that the ASGI server only delivers http.disconnect.
    while True:
        message = await request.receive()
        if message["type"] == "http.disconnect":
            return


async def suspend_or_disconnect(request: Request, delay_seconds: float) -> bool:
    """
    Suspend for delay_seconds unless the client disconnects first.

    Returns True when the full delay elapsed, False when the client
    disconnected (the pending sleep is cancelled).
    """
    sleeper = asyncio.ensure_future(asyncio.sleep(delay_seconds))
    watcher = asyncio.ensure_future(_wait_for_disconnect(request))

    try:
        done, _ = await asyncio.wait(
            {sleeper, watcher},
            return_when=asyncio.FIRST_COMPLETED,
        )
    finally:
        for task in (sleeper, watcher):
            if not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

    if sleeper in done:
        return True

    logger.info(
        "Client disconnected from %s before %.0fms delay elapsed",
        request.url.path,
        delay_seconds * 1000.0,
    )
    return False
