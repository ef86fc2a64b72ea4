"""Stable public API for building tooling on top of plugctl.

This module is the supported integration surface for third-party callers.
Avoid importing from private/internal modules unless intentionally depending on
non-stable internals.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from plugctl.bridge.ble import BluetoothDeviceBridge
from plugctl.core.config import LoadedConfig, SessionConfig, load_config
from plugctl.core.errors import (
    AlreadyConnectedError,
    BridgeError,
    ConfigLoadError,
    ConfigValidationError,
    ConnectionFailedError,
    DeviceSelectionError,
    DuplicateRequestIdError,
    HandshakeError,
    PlugctlError,
    ProtocolDecodeError,
    SessionError,
    TransportConnectError,
    TransportError,
    TransportReceiveError,
    TransportSendError,
    TransportTimeoutError,
)
from plugctl.core.model import ClientDevice, ConnectionState, DeviceAction, DeviceEvent
from plugctl.core.session import Session
from plugctl.protocol import messages
from plugctl.protocol.codec import Codec, JsonCodec
from plugctl.transports.base import Fragment, Transport, TransportState
from plugctl.transports.websocket import WebSocketTransport

__all__ = [
    "PlugctlError",
    "ConfigLoadError",
    "ConfigValidationError",
    "SessionError",
    "AlreadyConnectedError",
    "ConnectionFailedError",
    "HandshakeError",
    "DuplicateRequestIdError",
    "ProtocolDecodeError",
    "DeviceSelectionError",
    "BridgeError",
    "TransportError",
    "TransportConnectError",
    "TransportSendError",
    "TransportReceiveError",
    "TransportTimeoutError",
    "ClientDevice",
    "ConnectionState",
    "DeviceAction",
    "DeviceEvent",
    "LoadedConfig",
    "SessionConfig",
    "load_config",
    "Session",
    "messages",
    "Codec",
    "JsonCodec",
    "Fragment",
    "Transport",
    "TransportState",
    "WebSocketTransport",
    "BluetoothDeviceBridge",
    "open_session",
]


@asynccontextmanager
async def open_session(
    address: str | None = None,
    *,
    config: SessionConfig | None = None,
    transport: Transport | None = None,
    codec: Codec | None = None,
) -> AsyncIterator[Session]:
    """Connect a new session and disconnect it when the block exits."""
    session = Session(config, transport=transport, codec=codec)
    try:
        await session.connect(address)
        yield session
    finally:
        await session.disconnect()
