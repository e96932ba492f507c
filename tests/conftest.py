"""Pytest configuration and fixtures for the relay tests."""

import socket
import socketserver
import threading
from collections.abc import Iterator

import pytest
from loguru import logger
from socks5_client import IO_TIMEOUT, PASSWORD, USERNAME

from socks_relay.core.config import ProxyConfig
from socks_relay.core.lib.auth import StaticCredentials
from socks_relay.core.lib.proxy_server import SocksProxy
from socks_relay.core.lib.proxy_stats import ProxyStats


@pytest.fixture
def credentials() -> StaticCredentials:
    return StaticCredentials(USERNAME, PASSWORD)


@pytest.fixture
def stats() -> ProxyStats:
    return ProxyStats()


@pytest.fixture
def log_messages() -> Iterator[list[str]]:
    """Collect the messages logged while the test runs."""
    messages: list[str] = []
    sink_id = logger.add(lambda message: messages.append(message.record["message"]), level="DEBUG")
    yield messages
    logger.remove(sink_id)


@pytest.fixture
def socket_pair() -> Iterator[tuple[socket.socket, socket.socket]]:
    """Provide (server side, client side) of a connected stream pair."""
    server_side, client_side = socket.socketpair()
    client_side.settimeout(IO_TIMEOUT)
    yield server_side, client_side
    server_side.close()
    client_side.close()


class _EchoHandler(socketserver.BaseRequestHandler):
    def handle(self) -> None:
        while data := self.request.recv(4096):
            self.request.sendall(data)


class _EchoServer(socketserver.ThreadingMixIn, socketserver.TCPServer):
    allow_reuse_address = True
    daemon_threads = True


@pytest.fixture
def echo_server_addr() -> Iterator[tuple[str, int]]:
    """Provide the address of a running TCP echo server."""
    server = _EchoServer(("127.0.0.1", 0), _EchoHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server.server_address[:2]
    server.shutdown()
    server.server_close()


@pytest.fixture
def proxy_server(credentials: StaticCredentials) -> Iterator[SocksProxy]:
    """Provide a running relay server on an ephemeral localhost port."""
    config = ProxyConfig(authenticator=credentials, host="127.0.0.1", port=0, connect_timeout=2.0)
    server = SocksProxy(config)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.shutdown()
    server.server_close()


@pytest.fixture
def proxy_addr(proxy_server: SocksProxy) -> tuple[str, int]:
    return proxy_server.server_address[:2]


@pytest.fixture
def client(proxy_addr: tuple[str, int]) -> Iterator[socket.socket]:
    """Provide a raw client socket connected to the relay."""
    sock = socket.create_connection(proxy_addr, timeout=IO_TIMEOUT)
    yield sock
    sock.close()
