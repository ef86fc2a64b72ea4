"""Bluetooth LE bridge for a single physical device, built on bleak."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from plugctl.core.errors import BridgeError

LOGGER = logging.getLogger(__name__)

ClientFactory = Callable[..., Any]


def _bleak_client_factory() -> ClientFactory:
    try:
        from bleak import BleakClient  # type: ignore
    except Exception as exc:  # pragma: no cover - import failure path
        raise BridgeError("BLE bridge requires 'bleak'. Install dependency and retry.") from exc
    return BleakClient


class BluetoothDeviceBridge:
    """Holds the GATT connection for one device and reports when it goes away.

    Removal observers fire once, the first time the link drops, whether the
    device disappeared or ``disconnect()`` was called.
    """

    def __init__(
        self,
        address: str,
        name: str,
        *,
        timeout_s: float = 5.0,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self.address = address
        self.name = name
        self.timeout_s = timeout_s
        self._client_factory = client_factory
        self._client: Any = None
        self._removed = False
        self._removed_observers: list[Callable[[BluetoothDeviceBridge], Any]] = []

    @property
    def is_connected(self) -> bool:
        return self._client is not None and bool(self._client.is_connected)

    def on_removed(self, callback: Callable[[BluetoothDeviceBridge], Any]) -> Callable[[], None]:
        self._removed_observers.append(callback)

        def _unsubscribe() -> None:
            if callback in self._removed_observers:
                self._removed_observers.remove(callback)

        return _unsubscribe

    async def connect(self) -> None:
        factory = self._client_factory or _bleak_client_factory()
        self._removed = False
        self._client = factory(
            self.address,
            timeout=self.timeout_s,
            disconnected_callback=self._handle_disconnected,
        )
        try:
            await self._client.connect()
        except Exception as exc:
            raise BridgeError(f"BLE connect failed for {self.address}: {exc}") from exc
        if not self._client.is_connected:
            raise BridgeError(f"BLE connect failed for {self.address}")
        LOGGER.info("BLE bridge connected to %s (%s)", self.name, self.address)

    async def write(self, char_uuid: str, payload: bytes, *, with_response: bool = True) -> None:
        if not self.is_connected:
            raise BridgeError(f"BLE device {self.address} is not connected")
        try:
            await self._client.write_gatt_char(char_uuid, payload, response=with_response)
        except Exception as exc:
            raise BridgeError(f"BLE write to {char_uuid} failed: {exc}") from exc

    async def read(self, char_uuid: str) -> bytes:
        if not self.is_connected:
            raise BridgeError(f"BLE device {self.address} is not connected")
        try:
            data = await self._client.read_gatt_char(char_uuid)
        except Exception as exc:
            raise BridgeError(f"BLE read from {char_uuid} failed: {exc}") from exc
        return bytes(data)

    async def disconnect(self) -> None:
        client = self._client
        if client is None:
            return
        try:
            await client.disconnect()
        except Exception as exc:
            LOGGER.warning("BLE disconnect from %s failed: %s", self.address, exc)
        self._handle_disconnected(client)

    def _handle_disconnected(self, _client: Any) -> None:
        if self._removed:
            return
        self._removed = True
        LOGGER.info("BLE device %s (%s) removed", self.name, self.address)
        for callback in list(self._removed_observers):
            try:
                callback(self)
            except Exception:
                LOGGER.exception("Removal observer %r raised", callback)
