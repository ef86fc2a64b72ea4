"""Asynchronous client session: connection lifecycle, request correlation,
event routing, and keepalive over one transport connection.

Typical use::

    async with Session(config) as session:
        await session.connect()
        session.on_device_added(lambda event: print(event.device.name))
        await session.start_scanning()

A session must be disconnected by its owner (``disconnect()`` or leaving the
``async with`` block). Nothing is cleaned up implicitly when it is garbage
collected.
"""

from __future__ import annotations

import asyncio
import contextlib
import dataclasses
import functools
import logging
from collections.abc import Callable, Coroutine
from typing import Any

from plugctl.core.config import SessionConfig
from plugctl.core.correlation import CorrelationTable
from plugctl.core.dispatcher import (
    DEVICE_ADDED,
    DEVICE_REMOVED,
    ERROR,
    LOG,
    MESSAGE,
    SCANNING_FINISHED,
    EventDispatcher,
    Observer,
)
from plugctl.core.errors import (
    AlreadyConnectedError,
    ConnectionFailedError,
    HandshakeError,
    ProtocolDecodeError,
    TransportError,
)
from plugctl.core.keepalive import KeepalivePinger
from plugctl.core.model import ClientDevice, ConnectionState, DeviceAction, DeviceEvent
from plugctl.core.registry import DeviceRegistry
from plugctl.protocol.codec import Codec, JsonCodec
from plugctl.protocol.messages import (
    SYSTEM_ID,
    DeviceList,
    DeviceMessage,
    Error,
    ErrorClass,
    Message,
    Ok,
    Ping,
    RequestDeviceList,
    RequestLog,
    RequestServerInfo,
    ServerInfo,
    StartScanning,
    StopAllDevices,
    StopScanning,
    with_id,
)
from plugctl.transports.base import Transport, TransportState
from plugctl.transports.websocket import WebSocketTransport

LOGGER = logging.getLogger(__name__)

_INITIAL_ID = 1
_DRAIN_PASSES = 3
_CLOSE_REASON = "Client shutdown"
_SETTLED_STATES = (TransportState.CLOSED, TransportState.ABORTED)


def _bad_state_error() -> Error:
    return Error(id=SYSTEM_ID, error_message="Bad connection state", error_code=ErrorClass.ERROR_UNKNOWN)


def _connection_closed_error() -> Error:
    return Error(id=SYSTEM_ID, error_message="Connection closed!", error_code=ErrorClass.ERROR_UNKNOWN)


class Session:
    def __init__(
        self,
        config: SessionConfig | None = None,
        *,
        transport: Transport | None = None,
        codec: Codec | None = None,
    ) -> None:
        self.config = config or SessionConfig()
        self._transport: Transport = transport or WebSocketTransport(
            close_timeout_s=self.config.close_timeout_s
        )
        self._codec: Codec = codec or JsonCodec()
        self._pending = CorrelationTable()
        self._devices = DeviceRegistry()
        self._dispatcher = EventDispatcher(self._devices)
        self._generation = 0
        self._keepalive = self._new_keepalive(self._generation)
        self._state = ConnectionState.DISCONNECTED
        self._next_id = _INITIAL_ID
        self._write_lock = asyncio.Lock()
        self._lifecycle_lock = asyncio.Lock()
        self._read_task: asyncio.Task[None] | None = None
        self._stopping = False
        self._background: set[asyncio.Task[Any]] = set()
        self.server_info: ServerInfo | None = None

    async def __aenter__(self) -> Session:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.disconnect()

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED

    @property
    def pending_requests(self) -> int:
        return len(self._pending)

    @property
    def keepalive_interval_ms(self) -> int | None:
        return self._keepalive.interval_ms if self._keepalive.armed else None

    # Lifecycle

    async def connect(self, address: str | None = None) -> ServerInfo:
        if self._state is not ConnectionState.DISCONNECTED:
            raise AlreadyConnectedError(f"Already connected (state: {self._state.value})")

        address = address or self.config.server_address
        self._generation += 1
        generation = self._generation
        self._state = ConnectionState.CONNECTING
        try:
            await self._transport.open(address, timeout_s=self.config.connect_timeout_s)
        except TransportError as exc:
            if self._owns_connect(generation):
                self._state = ConnectionState.DISCONNECTED
            raise ConnectionFailedError(f"Connection to {address} failed: {exc}") from exc
        if not self._owns_connect(generation):
            # disconnect() ran while the transport was opening.
            if self._generation == generation:
                await self._close_transport()
            raise ConnectionFailedError("connect cancelled by disconnect")
        if self._transport.state is not TransportState.OPEN:
            self._state = ConnectionState.DISCONNECTED
            raise ConnectionFailedError(
                f"Connection to {address} failed: transport is {self._transport.state.value}"
            )

        self._pending.clear()
        self._devices.clear()
        self._next_id = _INITIAL_ID
        self._stopping = False
        self.server_info = None
        self._keepalive = self._new_keepalive(generation)
        self._read_task = asyncio.create_task(self._read_loop(generation), name="plugctl-read-loop")
        self._state = ConnectionState.CONNECTED
        LOGGER.info("Connected to %s", address)

        reply = await self.send_request(
            RequestServerInfo(
                client_name=self.config.client_name,
                message_version=self.config.message_version,
            )
        )
        if isinstance(reply, ServerInfo):
            self.server_info = reply
            LOGGER.info(
                "Server '%s' (message version %d, max ping time %d ms)",
                reply.server_name,
                reply.message_version,
                reply.max_ping_time,
            )
            self._keepalive.arm(reply.max_ping_time)
            return reply

        await self._shutdown(generation)
        if isinstance(reply, Error):
            raise HandshakeError(f"Server rejected handshake: {reply.error_message}")
        kind = reply.kind if reply is not None else "nothing"
        raise HandshakeError(f"Unexpected message returned: {kind}")

    def _owns_connect(self, generation: int) -> bool:
        return self._generation == generation and self._state is ConnectionState.CONNECTING

    def _new_keepalive(self, generation: int) -> KeepalivePinger:
        return KeepalivePinger(
            self._send_ping,
            on_error=functools.partial(self._dispatcher.notify, ERROR),
            on_failure=functools.partial(self._on_connection_lost, generation, "keepalive ping failed"),
        )

    async def disconnect(self) -> None:
        await self._shutdown(None)

    async def _shutdown(self, generation: int | None) -> None:
        """Tear down the connection; with ``generation`` set, only if it is still current."""
        async with self._lifecycle_lock:
            if self._state is ConnectionState.DISCONNECTED:
                return
            if generation is not None and generation != self._generation:
                LOGGER.debug("Ignoring teardown for stale connection %d", generation)
                return
            LOGGER.info("Disconnecting (state: %s)", self._state.value)
            self._state = ConnectionState.CLOSING
            self._stopping = True

            keepalive_task = self._keepalive.disarm()
            if keepalive_task is not None:
                with contextlib.suppress(asyncio.CancelledError):
                    await keepalive_task

            await self._close_transport()
            await self._stop_read_loop()
            self._drain_pending()

            self._next_id = _INITIAL_ID
            self._state = ConnectionState.DISCONNECTED
            LOGGER.info("Disconnected")

    async def _close_transport(self) -> None:
        try:
            await asyncio.wait_for(self._settle_transport(), timeout=self.config.close_timeout_s)
        except TimeoutError:
            LOGGER.warning(
                "Transport did not close within %.1fs (state: %s)",
                self.config.close_timeout_s,
                self._transport.state.value,
            )
        except (TransportError, OSError) as exc:
            LOGGER.warning("Error while closing transport: %s", exc)

    async def _settle_transport(self) -> None:
        if self._transport.state in (TransportState.CONNECTING, TransportState.OPEN):
            await self._transport.close_output(_CLOSE_REASON)
        if self._transport.state not in _SETTLED_STATES:
            await self._transport.wait_closed()

    async def _stop_read_loop(self) -> None:
        task, self._read_task = self._read_task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    def _drain_pending(self) -> None:
        for _ in range(_DRAIN_PASSES):
            if not len(self._pending):
                break
            drained = self._pending.drain_all(_connection_closed_error)
            LOGGER.debug("Failed %d pending requests on disconnect", drained)
        if len(self._pending):
            LOGGER.warning("Abandoning %d pending requests", len(self._pending))
            self._pending.clear()

    async def _on_connection_lost(self, generation: int, reason: str) -> None:
        LOGGER.warning("Connection lost: %s", reason)
        await self._shutdown(generation)

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    # Inbound

    async def _read_loop(self, generation: int) -> None:
        buffer = bytearray()
        try:
            while True:
                fragment = await self._transport.receive()
                buffer.extend(fragment.data)
                if not fragment.end_of_message:
                    continue
                payload = bytes(buffer)
                buffer.clear()
                self._route_payload(payload)
        except asyncio.CancelledError:
            if not self._stopping:
                raise
            return
        except TransportError as exc:
            if self._stopping:
                return
            LOGGER.warning("Read loop stopped: %s", exc)
        except Exception:
            LOGGER.exception("Read loop crashed")
        if not self._stopping:
            self._spawn(self._on_connection_lost(generation, "read loop ended"))

    def _route_payload(self, payload: bytes) -> None:
        try:
            messages = self._codec.decode(payload)
        except ProtocolDecodeError as exc:
            LOGGER.warning("Discarding undecodable payload: %s", exc)
            self._dispatcher.notify(
                ERROR,
                Error(id=SYSTEM_ID, error_message=str(exc), error_code=ErrorClass.ERROR_MSG),
            )
            return

        for message in messages:
            LOGGER.debug("Received %s (id %s)", message.kind, message.id)
            if message.id and message.id in self._pending:
                self._pending.complete(message.id, message)
                continue
            self._dispatcher.dispatch(message)

    # Outbound

    def _allocate_id(self) -> int:
        message_id = self._next_id
        self._next_id += 1
        return message_id

    async def _write(self, payload: bytes) -> Error | None:
        async with self._write_lock:
            if self._transport.state is not TransportState.OPEN:
                return _bad_state_error()
            try:
                await self._transport.send(payload)
            except TransportError as exc:
                LOGGER.warning("Send failed: %s", exc)
                return Error(id=SYSTEM_ID, error_message=str(exc), error_code=ErrorClass.ERROR_UNKNOWN)
        return None

    async def send_request(self, message: Message) -> Message | None:
        """Send ``message`` and wait for its reply.

        Messages created with ``id=0`` are written without waiting and return
        None. Failures come back as ``Error`` messages rather than exceptions.
        """
        if self._state is not ConnectionState.CONNECTED or self._transport.state is not TransportState.OPEN:
            return _bad_state_error()

        if message.id == SYSTEM_ID:
            return await self._write(self._codec.encode(message))

        message_id = self._allocate_id()
        message = with_id(message, message_id)
        payload = self._codec.encode(message)

        future: asyncio.Future[Message] = asyncio.get_running_loop().create_future()
        self._pending.register(message_id, future)
        LOGGER.debug("Sending %s (id %d)", message.kind, message_id)
        failure = await self._write(payload)
        if failure is not None:
            self._pending.discard(message_id, future)
            return failure
        try:
            return await future
        finally:
            self._pending.discard(message_id, future)

    async def send_request_expect_ok(self, message: Message) -> bool:
        return isinstance(await self.send_request(message), Ok)

    async def _send_ping(self) -> Message:
        reply = await self.send_request(Ping())
        return reply if reply is not None else _bad_state_error()

    # Operations

    async def request_device_list(self) -> list[ClientDevice]:
        reply = await self.send_request(RequestDeviceList())
        if not isinstance(reply, DeviceList):
            if isinstance(reply, Error):
                self._dispatcher.notify(ERROR, reply)
            return self.list_devices()

        for info in reply.devices:
            device = ClientDevice.from_message(info)
            if self._devices.add_if_absent(device):
                self._dispatcher.notify(DEVICE_ADDED, DeviceEvent(device=device, action=DeviceAction.ADDED))
        return self.list_devices()

    def list_devices(self) -> list[ClientDevice]:
        return self._devices.snapshot()

    def get_device(self, index: int) -> ClientDevice | None:
        return self._devices.get(index)

    async def start_scanning(self) -> bool:
        return await self.send_request_expect_ok(StartScanning())

    async def stop_scanning(self) -> bool:
        return await self.send_request_expect_ok(StopScanning())

    async def stop_all_devices(self) -> bool:
        return await self.send_request_expect_ok(StopAllDevices())

    async def request_log(self, level: str) -> bool:
        return await self.send_request_expect_ok(RequestLog(log_level=level))

    async def ping(self) -> bool:
        return await self.send_request_expect_ok(Ping())

    async def send_device_message(self, device: ClientDevice | int, command: DeviceMessage) -> Message | None:
        index = device if isinstance(device, int) else device.index
        registered = self._devices.get(index)
        if registered is None:
            return Error(id=SYSTEM_ID, error_message="Device not available.", error_code=ErrorClass.ERROR_DEVICE)
        if not registered.accepts(command.kind):
            return Error(
                id=SYSTEM_ID,
                error_message=f"Device does not accept message type: {command.kind}",
                error_code=ErrorClass.ERROR_DEVICE,
            )
        return await self.send_request(dataclasses.replace(command, device_index=index))

    # Subscriptions

    def on_device_added(self, callback: Observer) -> Callable[[], None]:
        return self._dispatcher.subscribe(DEVICE_ADDED, callback)

    def on_device_removed(self, callback: Observer) -> Callable[[], None]:
        return self._dispatcher.subscribe(DEVICE_REMOVED, callback)

    def on_scanning_finished(self, callback: Observer) -> Callable[[], None]:
        return self._dispatcher.subscribe(SCANNING_FINISHED, callback)

    def on_error(self, callback: Observer) -> Callable[[], None]:
        return self._dispatcher.subscribe(ERROR, callback)

    def on_log(self, callback: Observer) -> Callable[[], None]:
        return self._dispatcher.subscribe(LOG, callback)

    def on_message(self, callback: Observer) -> Callable[[], None]:
        """Receive every unsolicited message before kind-specific routing."""
        return self._dispatcher.subscribe(MESSAGE, callback)
