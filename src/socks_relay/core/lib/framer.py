"""Incremental framing of SOCKS5 handshake messages.

A byte-stream transport may split one handshake message over several reads or
pack several messages into one read. The ``Framer`` buffers whatever arrived
and a frame spec decides, from the bytes buffered so far, how long the next
frame is. Frames are only decoded once complete; leftover bytes stay
buffered for the next stage.

Frame layouts:

    method selection   VER NMETHODS METHODS[NMETHODS]
    auth request       VER ULEN UNAME[ULEN] PLEN PASSWD[PLEN]
    connect request    VER CMD RSV ATYP DST.ADDR DST.PORT

Malformed fixed fields raise as soon as the byte holding them is buffered.
"""

import struct
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Final, Generic, TypeVar

from socks_relay.core.exceptions import ProtocolError
from socks_relay.core.lib.address import (
    PORT_LENGTH,
    REP_COMMAND_NOT_SUPPORTED,
    SOCKS_VERSION,
    ConnectTarget,
    address_length,
    decode_target,
)

AUTH_VERSION: Final = 1
CONNECT_CMD: Final = 1

T = TypeVar("T")


@dataclass(frozen=True)
class MethodSelection:
    """Client greeting listing the offered authentication methods."""

    methods: bytes


@dataclass(frozen=True)
class AuthRequest:
    """RFC 1929 username/password subnegotiation request."""

    username: str
    password: str

    def __repr__(self) -> str:
        return f"AuthRequest(username={self.username!r})"


@dataclass(frozen=True)
class ConnectRequest:
    """CONNECT request with its decoded destination."""

    command: int
    target: ConnectTarget


class FrameSpec(ABC, Generic[T]):
    """Describes how to measure and decode one kind of frame."""

    @abstractmethod
    def frame_length(self, data: bytes) -> int | None:
        """Return the total frame length, or None if it is not known yet.

        Raises:
            ProtocolError: If a fixed field already buffered is invalid
        """

    @abstractmethod
    def decode(self, frame: bytes) -> T:
        """Decode a complete frame."""


class MethodSelectionSpec(FrameSpec[MethodSelection]):
    def frame_length(self, data: bytes) -> int | None:
        if len(data) < 1:
            return None
        if data[0] != SOCKS_VERSION:
            raise ProtocolError(f"Unsupported SOCKS version {data[0]}")
        if len(data) < 2:
            return None
        return 2 + data[1]

    def decode(self, frame: bytes) -> MethodSelection:
        return MethodSelection(methods=frame[2:])


class AuthRequestSpec(FrameSpec[AuthRequest]):
    def frame_length(self, data: bytes) -> int | None:
        if len(data) < 1:
            return None
        if data[0] != AUTH_VERSION:
            raise ProtocolError(f"Unsupported auth subnegotiation version {data[0]}")
        if len(data) < 2:
            return None
        ulen = data[1]
        if len(data) < 3 + ulen:
            return None
        plen = data[2 + ulen]
        return 3 + ulen + plen

    def decode(self, frame: bytes) -> AuthRequest:
        ulen = frame[1]
        username = frame[2 : 2 + ulen]
        password = frame[3 + ulen :]
        # Undecodable bytes never match a configured credential
        return AuthRequest(
            username=username.decode(errors="replace"),
            password=password.decode(errors="replace"),
        )


class ConnectRequestSpec(FrameSpec[ConnectRequest]):
    HEADER_LENGTH: Final = 4

    def frame_length(self, data: bytes) -> int | None:
        if len(data) < 1:
            return None
        if data[0] != SOCKS_VERSION:
            raise ProtocolError(f"Unsupported SOCKS version {data[0]} in request")
        if len(data) < 2:
            return None
        if data[1] != CONNECT_CMD:
            raise ProtocolError(f"Unsupported command {data[1]}", REP_COMMAND_NOT_SUPPORTED)
        if len(data) < self.HEADER_LENGTH:
            return None
        length = address_length(data[3], data[self.HEADER_LENGTH :])
        if length is None:
            return None
        return self.HEADER_LENGTH + length + PORT_LENGTH

    def decode(self, frame: bytes) -> ConnectRequest:
        _, cmd, _, atyp = struct.unpack("!BBBB", frame[: self.HEADER_LENGTH])
        return ConnectRequest(command=cmd, target=decode_target(atyp, frame[self.HEADER_LENGTH :]))


METHOD_SELECTION: Final = MethodSelectionSpec()
AUTH_REQUEST: Final = AuthRequestSpec()
CONNECT_REQUEST: Final = ConnectRequestSpec()


class Framer:
    """Byte accumulator owned by a single session."""

    def __init__(self) -> None:
        self._buffer = bytearray()

    def __len__(self) -> int:
        return len(self._buffer)

    def feed(self, data: bytes) -> None:
        """Append newly received bytes."""
        self._buffer.extend(data)

    def try_extract(self, spec: FrameSpec[T]) -> T | None:
        """Decode and consume the next frame if it is fully buffered.

        Returns:
            T | None: The decoded frame, or None when more bytes are needed.
            Nothing is consumed in the latter case.

        Raises:
            ProtocolError: If the buffered bytes are malformed
        """
        data = bytes(self._buffer)
        length = spec.frame_length(data)
        if length is None or len(data) < length:
            return None
        frame = spec.decode(data[:length])
        del self._buffer[:length]
        return frame

    def drain(self) -> bytes:
        """Remove and return everything still buffered."""
        data = bytes(self._buffer)
        self._buffer.clear()
        return data
