"""Client-side helpers for driving the relay in tests."""

import socket
import struct

USERNAME = "abc"
PASSWORD = "xyz"
IO_TIMEOUT = 5.0


class FakeUpstream:
    """Stand-in for a dialled socket with a fixed local address."""

    def __init__(self, bound: tuple[str, int] = ("10.0.0.5", 54321)) -> None:
        self.bound = bound
        self.closed = False
        self.sent = bytearray()

    def getsockname(self) -> tuple[str, int]:
        return self.bound

    def sendall(self, data: bytes) -> None:
        self.sent.extend(data)

    def recv(self, bufsize: int) -> bytes:
        return b""

    def shutdown(self, how: int) -> None:
        pass

    def close(self) -> None:
        self.closed = True


def recv_exactly(sock: socket.socket, size: int) -> bytes:
    """Read exactly ``size`` bytes or fail on early EOF."""
    data = bytearray()
    while len(data) < size:
        chunk = sock.recv(size - len(data))
        if not chunk:
            raise EOFError(f"Connection closed after {len(data)} of {size} bytes")
        data.extend(chunk)
    return bytes(data)


def recv_all(sock: socket.socket) -> bytes:
    """Read until the peer closes."""
    data = bytearray()
    while chunk := sock.recv(4096):
        data.extend(chunk)
    return bytes(data)


def greeting(*methods: int) -> bytes:
    return struct.pack("!BB", 5, len(methods)) + bytes(methods)


def auth_request(username: str = USERNAME, password: str = PASSWORD) -> bytes:
    user, pw = username.encode(), password.encode()
    return struct.pack("!BB", 1, len(user)) + user + struct.pack("!B", len(pw)) + pw


def connect_request(host: str, port: int) -> bytes:
    return struct.pack("!BBBB", 5, 1, 0, 1) + socket.inet_aton(host) + struct.pack("!H", port)


def open_tunnel(sock: socket.socket, host: str, port: int) -> bytes:
    """Run the whole handshake on ``sock`` and return the CONNECT reply."""
    sock.sendall(greeting(0x02))
    assert recv_exactly(sock, 2) == b"\x05\x02"
    sock.sendall(auth_request())
    assert recv_exactly(sock, 2) == b"\x01\x00"
    sock.sendall(connect_request(host, port))
    return recv_exactly(sock, 10)
