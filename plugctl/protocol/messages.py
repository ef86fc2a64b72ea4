"""Protocol message types.

Every message carries an ``id``. ``SYSTEM_ID`` (0) marks messages that expect no
reply or that the server originated on its own. Outgoing messages are created
with ``id=None`` and receive an id from the session when they are sent.

The kind tag of a message is its class name, which is also its name on the
wire and the name servers list in a device's accepted messages.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any

SYSTEM_ID = 0


class ErrorClass(IntEnum):
    ERROR_UNKNOWN = 0
    ERROR_INIT = 1
    ERROR_PING = 2
    ERROR_MSG = 3
    ERROR_DEVICE = 4


@dataclass(frozen=True, kw_only=True)
class Message:
    id: int | None = None

    @property
    def kind(self) -> str:
        return type(self).__name__


def with_id(message: Message, message_id: int) -> Message:
    return dataclasses.replace(message, id=message_id)


@dataclass(frozen=True, kw_only=True)
class Ok(Message):
    pass


@dataclass(frozen=True, kw_only=True)
class Error(Message):
    error_message: str
    error_code: ErrorClass = ErrorClass.ERROR_UNKNOWN


@dataclass(frozen=True, kw_only=True)
class Ping(Message):
    pass


@dataclass(frozen=True, kw_only=True)
class Test(Message):
    test_string: str = ""


@dataclass(frozen=True, kw_only=True)
class RequestServerInfo(Message):
    client_name: str = ""
    message_version: int = 1


@dataclass(frozen=True, kw_only=True)
class ServerInfo(Message):
    server_name: str = ""
    major_version: int = 0
    minor_version: int = 0
    build_version: int = 0
    message_version: int = 1
    max_ping_time: int = 0


@dataclass(frozen=True, kw_only=True)
class RequestLog(Message):
    log_level: str = "Off"


@dataclass(frozen=True, kw_only=True)
class Log(Message):
    log_level: str = ""
    log_message: str = ""


@dataclass(frozen=True, kw_only=True)
class StartScanning(Message):
    pass


@dataclass(frozen=True, kw_only=True)
class StopScanning(Message):
    pass


@dataclass(frozen=True, kw_only=True)
class ScanningFinished(Message):
    pass


@dataclass(frozen=True, kw_only=True)
class RequestDeviceList(Message):
    pass


@dataclass(frozen=True, kw_only=True)
class DeviceInfo:
    device_name: str
    device_index: int
    device_messages: tuple[str, ...] = ()


@dataclass(frozen=True, kw_only=True)
class DeviceList(Message):
    devices: tuple[DeviceInfo, ...] = ()


@dataclass(frozen=True, kw_only=True)
class DeviceAdded(Message):
    device_name: str
    device_index: int
    device_messages: tuple[str, ...] = ()


@dataclass(frozen=True, kw_only=True)
class DeviceRemoved(Message):
    device_index: int


@dataclass(frozen=True, kw_only=True)
class StopAllDevices(Message):
    pass


@dataclass(frozen=True, kw_only=True)
class DeviceMessage(Message):
    """Base for commands addressed to a single device."""

    device_index: int = 0


@dataclass(frozen=True, kw_only=True)
class StopDeviceCmd(DeviceMessage):
    pass


@dataclass(frozen=True, kw_only=True)
class SingleMotorVibrateCmd(DeviceMessage):
    speed: float


@dataclass(frozen=True, kw_only=True)
class SpeedSubcommand:
    index: int
    speed: float


@dataclass(frozen=True, kw_only=True)
class VibrateCmd(DeviceMessage):
    speeds: tuple[SpeedSubcommand, ...]


@dataclass(frozen=True, kw_only=True)
class RotateSubcommand:
    index: int
    speed: float
    clockwise: bool


@dataclass(frozen=True, kw_only=True)
class RotateCmd(DeviceMessage):
    rotations: tuple[RotateSubcommand, ...]


@dataclass(frozen=True, kw_only=True)
class VectorSubcommand:
    index: int
    duration: int
    position: float


@dataclass(frozen=True, kw_only=True)
class LinearCmd(DeviceMessage):
    vectors: tuple[VectorSubcommand, ...]


@dataclass(frozen=True, kw_only=True)
class FleshlightLaunchFW12Cmd(DeviceMessage):
    speed: int
    position: int


@dataclass(frozen=True, kw_only=True)
class LovenseCmd(DeviceMessage):
    command: str


@dataclass(frozen=True, kw_only=True)
class KiirooCmd(DeviceMessage):
    command: str


@dataclass(frozen=True, kw_only=True)
class VorzeA10CycloneCmd(DeviceMessage):
    speed: int
    clockwise: bool


@dataclass(frozen=True, kw_only=True)
class UnknownMessage(Message):
    """A well-formed message of a kind this client does not model."""

    wire_kind: str
    fields: Mapping[str, Any] = field(default_factory=dict)

    @property
    def kind(self) -> str:
        return self.wire_kind


MESSAGE_TYPES: dict[str, type[Message]] = {
    cls.__name__: cls
    for cls in (
        Ok,
        Error,
        Ping,
        Test,
        RequestServerInfo,
        ServerInfo,
        RequestLog,
        Log,
        StartScanning,
        StopScanning,
        ScanningFinished,
        RequestDeviceList,
        DeviceList,
        DeviceAdded,
        DeviceRemoved,
        StopAllDevices,
        StopDeviceCmd,
        SingleMotorVibrateCmd,
        VibrateCmd,
        RotateCmd,
        LinearCmd,
        FleshlightLaunchFW12Cmd,
        LovenseCmd,
        KiirooCmd,
        VorzeA10CycloneCmd,
    )
}
