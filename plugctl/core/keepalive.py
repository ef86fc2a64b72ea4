"""Periodic ping task that keeps a session alive."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable

from plugctl.protocol.messages import Error, Message

LOGGER = logging.getLogger(__name__)


def keepalive_interval_ms(max_ping_time_ms: int) -> int:
    """Ping period for a server-advertised maximum idle time; 0 means no pinging."""
    if max_ping_time_ms <= 0:
        return 0
    return max(1, round(max_ping_time_ms / 2))


class KeepalivePinger:
    """Sends a ping on a fixed-rate schedule until one fails.

    A failed ping (an error reply or an exception while sending) is fatal: the
    loop stops and ``on_failure`` is awaited once. There is no retry.
    """

    def __init__(
        self,
        send_ping: Callable[[], Awaitable[Message]],
        *,
        on_error: Callable[[Error], None],
        on_failure: Callable[[], Awaitable[None]],
    ) -> None:
        self._send_ping = send_ping
        self._on_error = on_error
        self._on_failure = on_failure
        self._task: asyncio.Task[None] | None = None
        self.interval_ms = 0

    @property
    def armed(self) -> bool:
        return self._task is not None and not self._task.done()

    def arm(self, max_ping_time_ms: int) -> bool:
        interval_ms = keepalive_interval_ms(max_ping_time_ms)
        if interval_ms == 0:
            LOGGER.debug("Server requires no keepalive")
            return False
        self.disarm()
        self.interval_ms = interval_ms
        self._task = asyncio.create_task(self._run(interval_ms / 1000), name="plugctl-keepalive")
        LOGGER.info("Keepalive armed at %d ms", interval_ms)
        return True

    def disarm(self) -> asyncio.Task[None] | None:
        """Stop pinging; returns the cancelled task so callers can await it."""
        task, self._task = self._task, None
        if task is None or task.done():
            return None
        if task is asyncio.current_task():
            # Failure path: the pinger is tearing down its own session.
            return None
        task.cancel()
        return task

    async def _run(self, interval_s: float) -> None:
        loop = asyncio.get_running_loop()
        next_at = loop.time()
        while await self._beat():
            # A slow ping shifts the schedule instead of queueing catch-up pings.
            next_at = max(next_at + interval_s, loop.time())
            await asyncio.sleep(max(0.0, next_at - loop.time()))
        await self._on_failure()

    async def _beat(self) -> bool:
        try:
            reply = await self._send_ping()
        except Exception:
            LOGGER.exception("Keepalive ping could not be sent")
            return False
        if isinstance(reply, Error):
            LOGGER.warning("Keepalive ping failed: %s", reply.error_message)
            self._on_error(reply)
            return False
        return True
