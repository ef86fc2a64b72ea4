"""WebSocket transport implementation using the websockets library."""

from __future__ import annotations

import logging

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI
from websockets.protocol import State

from plugctl.core.errors import (
    TransportConnectError,
    TransportReceiveError,
    TransportSendError,
    TransportTimeoutError,
)
from plugctl.transports.base import Fragment, TransportState

LOGGER = logging.getLogger(__name__)

_ABNORMAL_CLOSURE = 1006


class WebSocketTransport:
    """Text-frame WebSocket connection; each frame carries one whole payload."""

    def __init__(self, *, close_timeout_s: float = 2.0) -> None:
        self.close_timeout_s = close_timeout_s
        self._ws: ClientConnection | None = None

    @property
    def state(self) -> TransportState:
        if self._ws is None:
            return TransportState.CLOSED
        state = self._ws.state
        if state is State.CONNECTING:
            return TransportState.CONNECTING
        if state is State.OPEN:
            return TransportState.OPEN
        if state is State.CLOSING:
            return TransportState.CLOSE_SENT
        if self._ws.close_code in (None, _ABNORMAL_CLOSURE):
            return TransportState.ABORTED
        return TransportState.CLOSED

    async def open(self, address: str, *, timeout_s: float = 5.0) -> None:
        try:
            self._ws = await connect(
                address,
                open_timeout=timeout_s,
                close_timeout=self.close_timeout_s,
            )
        except TimeoutError as exc:
            raise TransportTimeoutError(f"WebSocket connect to {address} timed out") from exc
        except (InvalidURI, InvalidHandshake, OSError) as exc:
            raise TransportConnectError(f"WebSocket connect to {address} failed: {exc}") from exc
        LOGGER.info("WebSocket connected to %s", address)

    async def send(self, data: bytes) -> None:
        if self._ws is None:
            raise TransportSendError("WebSocket is not open")
        try:
            await self._ws.send(data.decode("utf-8"))
        except ConnectionClosed as exc:
            raise TransportSendError(f"WebSocket send failed: {exc}") from exc

    async def receive(self) -> Fragment:
        if self._ws is None:
            raise TransportReceiveError("WebSocket is not open")
        try:
            message = await self._ws.recv()
        except ConnectionClosed as exc:
            raise TransportReceiveError(f"WebSocket closed: {exc}") from exc
        data = message.encode("utf-8") if isinstance(message, str) else bytes(message)
        return Fragment(data=data, end_of_message=True)

    async def close_output(self, reason: str) -> None:
        if self._ws is None:
            return
        LOGGER.debug("Closing WebSocket: %s", reason)
        await self._ws.close(reason=reason)

    async def wait_closed(self) -> None:
        if self._ws is None:
            return
        await self._ws.wait_closed()
