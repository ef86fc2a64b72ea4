"""Core data models used across session, CLI, and API."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from plugctl.protocol.messages import DeviceAdded, DeviceInfo


class ConnectionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSING = "closing"


class DeviceAction(str, Enum):
    ADDED = "added"
    REMOVED = "removed"


@dataclass(frozen=True)
class ClientDevice:
    """Client-side record of a remote device and the command kinds it accepts."""

    index: int
    name: str
    allowed_messages: frozenset[str]

    @classmethod
    def from_message(cls, message: DeviceAdded | DeviceInfo) -> ClientDevice:
        return cls(
            index=message.device_index,
            name=message.device_name,
            allowed_messages=frozenset(message.device_messages),
        )

    def accepts(self, kind: str) -> bool:
        return kind in self.allowed_messages


@dataclass(frozen=True)
class DeviceEvent:
    device: ClientDevice
    action: DeviceAction
