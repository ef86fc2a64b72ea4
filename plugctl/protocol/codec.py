"""JSON wire codec for protocol messages.

A payload is a JSON array of single-key objects, the key naming the message kind
and the value holding its fields in PascalCase::

    [{"Ok": {"Id": 1}}, {"DeviceRemoved": {"Id": 0, "DeviceIndex": 3}}]

Inbound payloads are validated against the packaged message schema before any
message is built.
"""

from __future__ import annotations

import dataclasses
import json
import logging
from collections.abc import Sequence
from typing import Any, Protocol

from jsonschema import ValidationError

from plugctl.core.errors import ProtocolDecodeError
from plugctl.protocol.messages import (
    MESSAGE_TYPES,
    DeviceInfo,
    ErrorClass,
    Message,
    RotateSubcommand,
    SpeedSubcommand,
    UnknownMessage,
    VectorSubcommand,
)
from plugctl.schemas import load_schema_validator

LOGGER = logging.getLogger(__name__)

_NESTED_TYPES: dict[str, type] = {
    "devices": DeviceInfo,
    "speeds": SpeedSubcommand,
    "rotations": RotateSubcommand,
    "vectors": VectorSubcommand,
}


class Codec(Protocol):
    def encode(self, message: Message | Sequence[Message]) -> bytes:
        """Serialize one message or a batch into a single payload."""

    def decode(self, data: bytes) -> list[Message]:
        """Parse a complete payload into zero or more messages."""


def _pascal(name: str) -> str:
    return "".join(part.capitalize() for part in name.split("_"))


def _to_wire(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {
            _pascal(f.name): _to_wire(getattr(value, f.name))
            for f in dataclasses.fields(value)
        }
    if isinstance(value, (list, tuple)):
        return [_to_wire(item) for item in value]
    return value


def _from_wire(cls: type, body: dict[str, Any]) -> Any:
    kwargs: dict[str, Any] = {}
    for f in dataclasses.fields(cls):
        wire_name = _pascal(f.name)
        if wire_name not in body:
            continue
        value = body[wire_name]
        if f.name in _NESTED_TYPES:
            nested = _NESTED_TYPES[f.name]
            value = tuple(_from_wire(nested, item) for item in value)
        elif f.name == "device_messages":
            # Newer servers send a mapping of kind -> attributes.
            value = tuple(value.keys() if isinstance(value, dict) else value)
        elif f.name == "error_code":
            try:
                value = ErrorClass(value)
            except ValueError:
                value = ErrorClass.ERROR_UNKNOWN
        kwargs[f.name] = value
    return cls(**kwargs)


class JsonCodec:
    def __init__(self) -> None:
        self._validator = load_schema_validator("messages.schema.json")

    def encode(self, message: Message | Sequence[Message]) -> bytes:
        messages = [message] if isinstance(message, Message) else list(message)
        wire: list[dict[str, Any]] = []
        for item in messages:
            if item.id is None:
                raise ValueError(f"{item.kind} has no id assigned")
            if isinstance(item, UnknownMessage):
                wire.append({item.kind: {"Id": item.id, **item.fields}})
                continue
            wire.append({item.kind: _to_wire(item)})
        return json.dumps(wire, separators=(",", ":")).encode("utf-8")

    def decode(self, data: bytes) -> list[Message]:
        try:
            loaded = json.loads(data.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise ProtocolDecodeError(f"Invalid JSON payload: {exc}") from exc

        try:
            self._validator.validate(loaded)
        except ValidationError as exc:
            path = ".".join(str(p) for p in exc.path)
            where = f" ({path})" if path else ""
            raise ProtocolDecodeError(f"Schema validation failed{where}: {exc.message}") from exc

        messages: list[Message] = []
        for entry in loaded:
            ((kind, body),) = entry.items()
            cls = MESSAGE_TYPES.get(kind)
            if cls is None:
                LOGGER.debug("Decoded unknown message kind %s", kind)
                fields = {k: v for k, v in body.items() if k != "Id"}
                messages.append(UnknownMessage(id=body["Id"], wire_kind=kind, fields=fields))
                continue
            try:
                messages.append(_from_wire(cls, body))
            except (TypeError, KeyError) as exc:
                raise ProtocolDecodeError(f"Malformed {kind} message: {exc}") from exc
        return messages
