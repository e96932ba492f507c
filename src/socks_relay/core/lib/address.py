"""SOCKS5 address and reply encoding.

Handles the three address-type wire variants of RFC 1928:

    +------+----------+----------+
    | ATYP | DST.ADDR | DST.PORT |
    +------+----------+----------+
    |  1   | Variable |    2     |
    +------+----------+----------+

- 0x01 IPv4: 4 bytes
- 0x03 domain name: 1 length byte followed by that many bytes
- 0x04 IPv6: 16 bytes

and the server reply:

    +-----+-----+-------+------+----------+----------+
    | VER | REP |  RSV  | ATYP | BND.ADDR | BND.PORT |
    +-----+-----+-------+------+----------+----------+
"""

import ipaddress
import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Final

from socks_relay.core.exceptions import AddressDecodeError

SOCKS_VERSION: Final = 5
RSV: Final = 0

# Reply codes
REP_SUCCESS: Final = 0x00
REP_GENERAL_FAILURE: Final = 0x01
REP_CONNECTION_REFUSED: Final = 0x05
REP_COMMAND_NOT_SUPPORTED: Final = 0x07
REP_ADDRESS_TYPE_NOT_SUPPORTED: Final = 0x08

MAX_DOMAIN_LENGTH: Final = 255
PORT_LENGTH: Final = 2


class AddressType(IntEnum):
    """ATYP field values."""

    IPV4 = 0x01
    DOMAIN = 0x03
    IPV6 = 0x04


@dataclass(frozen=True)
class ConnectTarget:
    """Destination requested by a CONNECT command.

    Attributes:
        atyp: Address type the client used
        host: Dotted IPv4, compressed IPv6 or the domain name
        port: Destination port
    """

    atyp: AddressType
    host: str
    port: int

    def __str__(self) -> str:
        if self.atyp is AddressType.IPV6:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class Reply:
    """Server reply to a request: status plus the bound address."""

    status: int
    bound_address: str = "0.0.0.0"
    bound_port: int = 0

    def encode(self) -> bytes:
        """Encode the reply, picking ATYP from the bound address family."""
        try:
            address = ipaddress.ip_address(self.bound_address)
        except ValueError:
            address, port = ipaddress.IPv4Address(0), 0
        else:
            port = self.bound_port

        atyp = AddressType.IPV4 if address.version == 4 else AddressType.IPV6
        header = struct.pack("!BBBB", SOCKS_VERSION, self.status, RSV, atyp)
        return header + address.packed + struct.pack("!H", port)


def address_length(atyp: int, data: bytes) -> int | None:
    """Return how many ADDR bytes follow the ATYP field.

    Args:
        atyp: ATYP byte
        data: Bytes buffered after the ATYP field

    Returns:
        int | None: ADDR length including the domain length byte, or None if
        the domain length byte has not arrived yet

    Raises:
        AddressDecodeError: If the address type is unknown
    """
    if atyp == AddressType.IPV4:
        return 4
    if atyp == AddressType.IPV6:
        return 16
    if atyp == AddressType.DOMAIN:
        if not data:
            return None
        return 1 + data[0]
    raise AddressDecodeError(f"Unknown address type {atyp:#04x}", REP_ADDRESS_TYPE_NOT_SUPPORTED)


def decode_target(atyp: int, data: bytes) -> ConnectTarget:
    """Decode DST.ADDR + DST.PORT into a ConnectTarget.

    Raises:
        AddressDecodeError: If the address type is unknown or the bytes do
            not hold a complete address
    """
    length = address_length(atyp, data)
    if length is None or len(data) != length + PORT_LENGTH:
        raise AddressDecodeError("Truncated address", REP_ADDRESS_TYPE_NOT_SUPPORTED)

    (port,) = struct.unpack("!H", data[length:])
    if atyp == AddressType.IPV4:
        return ConnectTarget(AddressType.IPV4, str(ipaddress.IPv4Address(data[:4])), port)
    if atyp == AddressType.IPV6:
        return ConnectTarget(AddressType.IPV6, str(ipaddress.IPv6Address(data[:16])), port)

    try:
        domain = data[1:length].decode()
    except UnicodeDecodeError as exc:
        raise AddressDecodeError("Domain name is not valid UTF-8", REP_ADDRESS_TYPE_NOT_SUPPORTED) from exc
    return ConnectTarget(AddressType.DOMAIN, domain, port)


def encode_target(target: ConnectTarget) -> bytes:
    """Encode a ConnectTarget as ATYP + DST.ADDR + DST.PORT."""
    if target.atyp is AddressType.DOMAIN:
        name = target.host.encode()
        if len(name) > MAX_DOMAIN_LENGTH:
            raise ValueError(f"Domain name longer than {MAX_DOMAIN_LENGTH} bytes")
        address = struct.pack("!B", len(name)) + name
    else:
        address = ipaddress.ip_address(target.host).packed
    return struct.pack("!B", target.atyp) + address + struct.pack("!H", target.port)


def encode_reply(status: int, bound_address: str, bound_port: int) -> bytes:
    """Encode a reply carrying the actual bound address of the upstream."""
    return Reply(status, bound_address, bound_port).encode()


def encode_failure(status: int) -> bytes:
    """Encode a failure reply with the fixed IPv4 0.0.0.0:0 bound address."""
    return Reply(status).encode()
