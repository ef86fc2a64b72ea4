from __future__ import annotations

import json

import pytest

from plugctl.core.errors import ProtocolDecodeError
from plugctl.protocol.codec import JsonCodec
from plugctl.protocol.messages import (
    DeviceAdded,
    DeviceList,
    Error,
    ErrorClass,
    Ok,
    Ping,
    RequestServerInfo,
    RotateCmd,
    RotateSubcommand,
    ServerInfo,
    SpeedSubcommand,
    UnknownMessage,
    VibrateCmd,
)


@pytest.fixture(scope="module")
def codec() -> JsonCodec:
    return JsonCodec()


def test_encode_uses_kind_key_and_pascal_case_fields(codec: JsonCodec) -> None:
    payload = codec.encode(RequestServerInfo(id=1, client_name="plugctl", message_version=1))

    assert json.loads(payload) == [
        {"RequestServerInfo": {"Id": 1, "ClientName": "plugctl", "MessageVersion": 1}}
    ]


def test_encode_nested_subcommands(codec: JsonCodec) -> None:
    command = RotateCmd(
        id=7,
        device_index=2,
        rotations=(RotateSubcommand(index=0, speed=0.25, clockwise=True),),
    )

    assert json.loads(codec.encode(command)) == [
        {
            "RotateCmd": {
                "Id": 7,
                "DeviceIndex": 2,
                "Rotations": [{"Index": 0, "Speed": 0.25, "Clockwise": True}],
            }
        }
    ]


def test_encode_batch_in_order(codec: JsonCodec) -> None:
    payload = codec.encode([Ping(id=1), Ok(id=2)])

    assert [next(iter(entry)) for entry in json.loads(payload)] == ["Ping", "Ok"]


def test_encode_without_id_is_rejected(codec: JsonCodec) -> None:
    with pytest.raises(ValueError, match="Ping has no id"):
        codec.encode(Ping())


def test_decode_server_info(codec: JsonCodec) -> None:
    payload = (
        b'[{"ServerInfo": {"Id": 1, "ServerName": "Intiface", "MajorVersion": 1, '
        b'"MinorVersion": 2, "BuildVersion": 3, "MessageVersion": 1, "MaxPingTime": 500}}]'
    )

    (message,) = codec.decode(payload)

    assert message == ServerInfo(
        id=1,
        server_name="Intiface",
        major_version=1,
        minor_version=2,
        build_version=3,
        message_version=1,
        max_ping_time=500,
    )


def test_decode_device_list_with_nested_devices(codec: JsonCodec) -> None:
    payload = (
        b'[{"DeviceList": {"Id": 4, "Devices": ['
        b'{"DeviceName": "A", "DeviceIndex": 1, "DeviceMessages": ["VibrateCmd"]},'
        b'{"DeviceName": "B", "DeviceIndex": 2, "DeviceMessages": {"RotateCmd": {"FeatureCount": 1}}}'
        b"]}}]"
    )

    (message,) = codec.decode(payload)

    assert isinstance(message, DeviceList)
    assert [(d.device_index, d.device_messages) for d in message.devices] == [
        (1, ("VibrateCmd",)),
        (2, ("RotateCmd",)),
    ]


def test_decode_error_code_maps_to_error_class(codec: JsonCodec) -> None:
    (known, unknown) = codec.decode(
        b'[{"Error": {"Id": 3, "ErrorMessage": "bad", "ErrorCode": 4}},'
        b'{"Error": {"Id": 0, "ErrorMessage": "odd", "ErrorCode": 99}}]'
    )

    assert isinstance(known, Error)
    assert known.error_code is ErrorClass.ERROR_DEVICE
    assert unknown.error_code is ErrorClass.ERROR_UNKNOWN


def test_decode_unknown_kind_is_preserved(codec: JsonCodec) -> None:
    (message,) = codec.decode(b'[{"SensorReading": {"Id": 0, "Data": [1, 2]}}]')

    assert isinstance(message, UnknownMessage)
    assert message.kind == "SensorReading"
    assert message.fields == {"Data": [1, 2]}


def test_unknown_message_encodes_back_to_its_kind(codec: JsonCodec) -> None:
    message = UnknownMessage(id=5, wire_kind="Custom", fields={"Value": "x"})

    assert json.loads(codec.encode(message)) == [{"Custom": {"Id": 5, "Value": "x"}}]


def test_device_added_decodes_with_system_id(codec: JsonCodec) -> None:
    (message,) = codec.decode(
        b'[{"DeviceAdded": {"Id": 0, "DeviceName": "X", "DeviceIndex": 3, "DeviceMessages": ["VibrateCmd"]}}]'
    )

    assert message == DeviceAdded(id=0, device_name="X", device_index=3, device_messages=("VibrateCmd",))


def test_vibrate_round_trip(codec: JsonCodec) -> None:
    command = VibrateCmd(id=9, device_index=1, speeds=(SpeedSubcommand(index=0, speed=0.5),))

    assert codec.decode(codec.encode(command)) == [command]


@pytest.mark.parametrize(
    "payload",
    [
        b"not json",
        b"\xff\xfe",
        b'{"Ok": {"Id": 1}}',
        b'[{"Ok": {}}]',
        b'[{"Ok": {"Id": -1}}]',
        b'[{"Ok": {"Id": 1}, "Ping": {"Id": 2}}]',
        b'[{"DeviceRemoved": {"Id": 0}}]',
        b'[{"DeviceAdded": {"Id": 0, "DeviceName": "X"}}]',
    ],
)
def test_malformed_payloads_raise_decode_error(codec: JsonCodec, payload: bytes) -> None:
    with pytest.raises(ProtocolDecodeError):
        codec.decode(payload)


def test_empty_array_decodes_to_nothing(codec: JsonCodec) -> None:
    assert codec.decode(b"[]") == []
