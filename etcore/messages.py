"""Messages exchanged by the port forwarding machinery, with a wire encoding."""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from enum import IntEnum
from typing import Any


class MessageError(ValueError):
    """Raised when a message payload cannot be decoded."""


class TerminalPacketType(IntEnum):
    """Packet headers used between terminal client, server and router."""

    KEEP_ALIVE = 0
    TERMINAL_BUFFER = 1
    TERMINAL_INFO = 2
    PORT_FORWARD_DATA = 3
    PORT_FORWARD_DESTINATION_REQUEST = 4
    PORT_FORWARD_DESTINATION_RESPONSE = 5
    IDPASSKEY = 6
    TERMINAL_INIT = 7
    JUMPHOST_INIT = 8
    TERMINAL_USER_INFO = 9


def _field(data: dict, key: str, kind: type, default: Any = None) -> Any:
    value = data.get(key, default)
    if value is None:
        return default
    if kind is int and isinstance(value, bool):
        raise TypeError(f"field {key!r} must be an integer")
    if not isinstance(value, kind):
        raise TypeError(f"field {key!r} must be {kind.__name__}")
    return value


def _endpoint(data: dict, key: str) -> SocketEndpoint | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, dict):
        raise TypeError(f"field {key!r} must be an object")
    return SocketEndpoint.from_dict(value)


def _compact(items: dict) -> dict:
    return {key: value for key, value in items.items() if value is not None}


class _Wire:
    """Shared JSON wire encoding for message dataclasses."""

    def to_dict(self) -> dict:  # overridden by every message
        return {}

    @classmethod
    def from_dict(cls, data: dict):  # overridden by every message
        return cls()

    def encode(self) -> bytes:
        return json.dumps(
            self.to_dict(), sort_keys=True, separators=(",", ":")
        ).encode("utf-8")

    @classmethod
    def decode(cls, payload: bytes | str):
        try:
            data = json.loads(payload)
        except ValueError as exc:
            raise MessageError(f"cannot parse {cls.__name__}: {exc}") from exc
        if not isinstance(data, dict):
            raise MessageError(f"cannot parse {cls.__name__}: not an object")
        try:
            return cls.from_dict(data)
        except (KeyError, TypeError, ValueError, binascii.Error) as exc:
            raise MessageError(f"cannot parse {cls.__name__}: {exc}") from exc


@dataclass(frozen=True)
class SocketEndpoint(_Wire):
    """A named pipe path and/or a TCP host and port."""

    name: str | None = None
    port: int | None = None

    def __str__(self) -> str:
        text = self.name if self.name is not None else ""
        if self.port is not None:
            text += f":{self.port}"
        return text

    def to_dict(self) -> dict:
        return _compact({"name": self.name, "port": self.port})

    @classmethod
    def from_dict(cls, data: dict) -> SocketEndpoint:
        return cls(name=_field(data, "name", str), port=_field(data, "port", int))


@dataclass
class Packet:
    """A header byte and its payload."""

    header: int
    payload: bytes = b""

    def __post_init__(self) -> None:
        if not 0 <= int(self.header) <= 0xFF:
            raise ValueError("packet header must fit in one byte")


@dataclass
class PortForwardData(_Wire):
    """A chunk of data, a close or an error for one forwarded socket."""

    socket_id: int
    source_to_destination: bool = False
    buffer: bytes = b""
    closed: bool = False
    error: str | None = None

    def to_dict(self) -> dict:
        return _compact(
            {
                "socket_id": self.socket_id,
                "source_to_destination": self.source_to_destination,
                "buffer": base64.b64encode(self.buffer).decode("ascii"),
                "closed": self.closed,
                "error": self.error,
            }
        )

    @classmethod
    def from_dict(cls, data: dict) -> PortForwardData:
        encoded = _field(data, "buffer", str, "")
        return cls(
            socket_id=_field(data, "socket_id", int, 0),
            source_to_destination=_field(data, "source_to_destination", bool, False),
            buffer=base64.b64decode(encoded, validate=True),
            closed=_field(data, "closed", bool, False),
            error=_field(data, "error", str),
        )


@dataclass
class PortForwardSourceRequest(_Wire):
    """Ask for a listening source that forwards to ``destination``."""

    destination: SocketEndpoint
    source: SocketEndpoint | None = None
    environment_variable: str | None = None

    def to_dict(self) -> dict:
        return _compact(
            {
                "destination": self.destination.to_dict(),
                "source": self.source.to_dict() if self.source else None,
                "environment_variable": self.environment_variable,
            }
        )

    @classmethod
    def from_dict(cls, data: dict) -> PortForwardSourceRequest:
        destination = _endpoint(data, "destination")
        if destination is None:
            raise KeyError("destination")
        return cls(
            destination=destination,
            source=_endpoint(data, "source"),
            environment_variable=_field(data, "environment_variable", str),
        )


@dataclass
class PortForwardSourceResponse(_Wire):
    """Outcome of creating a source; ``error`` is set on failure."""

    error: str | None = None

    def to_dict(self) -> dict:
        return _compact({"error": self.error})

    @classmethod
    def from_dict(cls, data: dict) -> PortForwardSourceResponse:
        return cls(error=_field(data, "error", str))


@dataclass
class PortForwardDestinationRequest(_Wire):
    """Ask the far side to connect to ``destination`` for source socket ``fd``."""

    destination: SocketEndpoint
    fd: int

    def to_dict(self) -> dict:
        return {"destination": self.destination.to_dict(), "fd": self.fd}

    @classmethod
    def from_dict(cls, data: dict) -> PortForwardDestinationRequest:
        destination = _endpoint(data, "destination")
        if destination is None:
            raise KeyError("destination")
        if "fd" not in data:
            raise KeyError("fd")
        return cls(destination=destination, fd=_field(data, "fd", int))


@dataclass
class PortForwardDestinationResponse(_Wire):
    """The socket id assigned to ``client_fd``, or an error."""

    client_fd: int
    socket_id: int | None = None
    error: str | None = None

    def to_dict(self) -> dict:
        return _compact(
            {"client_fd": self.client_fd, "socket_id": self.socket_id, "error": self.error}
        )

    @classmethod
    def from_dict(cls, data: dict) -> PortForwardDestinationResponse:
        if "client_fd" not in data:
            raise KeyError("client_fd")
        return cls(
            client_fd=_field(data, "client_fd", int),
            socket_id=_field(data, "socket_id", int),
            error=_field(data, "error", str),
        )