"""Transport interfaces."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Protocol


class TransportState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSE_SENT = "close_sent"
    CLOSED = "closed"
    ABORTED = "aborted"


@dataclass(frozen=True)
class Fragment:
    data: bytes
    end_of_message: bool = True


class Transport(Protocol):
    @property
    def state(self) -> TransportState:
        """Current state of the underlying connection."""

    async def open(self, address: str, *, timeout_s: float = 5.0) -> None:
        """Open the connection or raise a TransportError."""

    async def send(self, data: bytes) -> None:
        """Write one complete message."""

    async def receive(self) -> Fragment:
        """Wait for the next fragment of an inbound message."""

    async def close_output(self, reason: str) -> None:
        """Start the graceful close handshake."""

    async def wait_closed(self) -> None:
        """Wait until the connection has settled into a closed state."""
