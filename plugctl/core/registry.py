"""Live registry of devices reported by the server."""

from __future__ import annotations

from plugctl.core.model import ClientDevice


class DeviceRegistry:
    def __init__(self) -> None:
        self._devices: dict[int, ClientDevice] = {}

    def __len__(self) -> int:
        return len(self._devices)

    def __contains__(self, index: object) -> bool:
        return index in self._devices

    def get(self, index: int) -> ClientDevice | None:
        return self._devices.get(index)

    def upsert(self, device: ClientDevice) -> ClientDevice | None:
        previous = self._devices.get(device.index)
        self._devices[device.index] = device
        return previous

    def add_if_absent(self, device: ClientDevice) -> bool:
        if device.index in self._devices:
            return False
        self._devices[device.index] = device
        return True

    def remove(self, index: int) -> ClientDevice | None:
        return self._devices.pop(index, None)

    def snapshot(self) -> list[ClientDevice]:
        return list(self._devices.values())

    def clear(self) -> None:
        self._devices.clear()
