"""In-flight request tracking keyed by message id."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from plugctl.core.errors import DuplicateRequestIdError
from plugctl.protocol.messages import Message

LOGGER = logging.getLogger(__name__)


class CorrelationTable:
    """Maps request ids to the futures awaiting their reply.

    All methods are synchronous and must be called from the owning event loop,
    so each removal-and-fulfil step runs without interleaving. Whoever pops an
    entry first is the only party that resolves it.
    """

    def __init__(self) -> None:
        self._pending: dict[int, asyncio.Future[Message]] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._pending

    def register(self, message_id: int, future: asyncio.Future[Message]) -> None:
        if message_id in self._pending:
            raise DuplicateRequestIdError(f"Request id {message_id} is already pending")
        self._pending[message_id] = future

    def complete(self, message_id: int, message: Message) -> bool:
        future = self._pending.pop(message_id, None)
        if future is None:
            return False
        if future.done():
            # Caller was cancelled while waiting.
            LOGGER.debug("Dropping reply %d for a cancelled request", message_id)
            return False
        future.set_result(message)
        return True

    def discard(self, message_id: int, future: asyncio.Future[Message] | None = None) -> None:
        """Forget ``message_id``; with ``future`` given, only if it is still that entry."""
        if future is None or self._pending.get(message_id) is future:
            self._pending.pop(message_id, None)

    def drain_all(self, error_factory: Callable[[], Message]) -> int:
        drained = 0
        for message_id in list(self._pending):
            future = self._pending.pop(message_id, None)
            if future is None or future.done():
                continue
            future.set_result(error_factory())
            drained += 1
        return drained

    def clear(self) -> None:
        self._pending.clear()
