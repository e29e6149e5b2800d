"""Delimiter-framed text packets used on the watch-party socket.

A frame is ``header + type + type_sep + args`` where the arguments are joined
with ``arg_sep``. Arguments are not escaped: a delimiter literal inside an
argument corrupts the frame on decode. The literals are wire compatible with
the coordinator and must not be changed for a running deployment.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Iterable

DEFAULT_HEADER = "||-=-||"
DEFAULT_TYPE_SEP = "-=-"
DEFAULT_ARG_SEP = "|.|"


class DecodeError(ValueError):
    """Raised when a text frame cannot be decoded into a packet."""


class MissingHeaderError(DecodeError):
    """The frame does not start with the configured header literal."""


class MalformedTypeError(DecodeError):
    """Splitting on the type separator did not yield exactly two segments."""


@dataclass(frozen=True)
class PacketFormat:
    header: str = DEFAULT_HEADER
    type_sep: str = DEFAULT_TYPE_SEP
    arg_sep: str = DEFAULT_ARG_SEP

    def __post_init__(self) -> None:
        for name in ("header", "type_sep", "arg_sep"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value:
                raise ValueError(f"packet {name} must be a non-empty string")

    def literals(self) -> tuple[str, str, str]:
        return (self.header, self.type_sep, self.arg_sep)


DEFAULT_FORMAT = PacketFormat()


@dataclass(frozen=True)
class Packet:
    type: str
    args: tuple[str, ...]

    def arg(self, index: int) -> str:
        try:
            return self.args[index]
        except IndexError:
            raise DecodeError(f"{self.type} packet missing argument {index}") from None


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, enum.Enum):
        return str(value.value)
    return str(value)


def encode_packet(packet_type: str, args: Iterable[Any] = (), fmt: PacketFormat = DEFAULT_FORMAT) -> str:
    """Serialise ``packet_type`` and ``args`` into a single text frame."""

    if not packet_type:
        raise ValueError("packet type must be non-empty")
    for literal in fmt.literals():
        if literal in packet_type:
            raise ValueError(f"packet type {packet_type!r} contains delimiter {literal!r}")
    body = fmt.arg_sep.join(_stringify(arg) for arg in args)
    return f"{fmt.header}{packet_type}{fmt.type_sep}{body}"


def decode_packet(frame: str | bytes, fmt: PacketFormat = DEFAULT_FORMAT) -> Packet:
    """Parse a text frame; arguments always come back as strings."""

    if isinstance(frame, (bytes, bytearray)):
        try:
            frame = bytes(frame).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DecodeError("frame is not valid UTF-8") from exc
    if not frame.startswith(fmt.header):
        raise MissingHeaderError(f"frame does not start with {fmt.header!r}")
    remainder = frame[len(fmt.header):]
    segments = remainder.split(fmt.type_sep)
    if len(segments) != 2:
        raise MalformedTypeError(
            f"expected one {fmt.type_sep!r} separator, found {len(segments) - 1}"
        )
    packet_type, body = segments
    if not body:
        return Packet(type=packet_type, args=())
    return Packet(type=packet_type, args=tuple(body.split(fmt.arg_sep)))


__all__ = [
    "DEFAULT_ARG_SEP",
    "DEFAULT_FORMAT",
    "DEFAULT_HEADER",
    "DEFAULT_TYPE_SEP",
    "DecodeError",
    "MalformedTypeError",
    "MissingHeaderError",
    "Packet",
    "PacketFormat",
    "decode_packet",
    "encode_packet",
]
