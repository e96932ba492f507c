"""Tests for the bidirectional relay and session teardown."""

import socket
import threading
from collections.abc import Iterator

import pytest
from socks5_client import IO_TIMEOUT, FakeUpstream, recv_exactly

from socks_relay.core.lib.proxy_stats import ProxyStats
from socks_relay.core.lib.relay import Relay
from socks_relay.core.lib.session import ConnectionSession, Stage


class RelayHarness:
    """Client app <-> [session: client end, upstream end] <-> upstream app."""

    def __init__(self) -> None:
        client_proxy, self.client_app = socket.socketpair()
        upstream_proxy, self.upstream_app = socket.socketpair()
        self.client_app.settimeout(IO_TIMEOUT)
        self.upstream_app.settimeout(IO_TIMEOUT)
        self.session = ConnectionSession(client_proxy, "test-peer")
        self.session.attach_upstream(upstream_proxy)
        self.session.advance(Stage.RELAYING)
        self.stats = ProxyStats()
        self.thread: threading.Thread | None = None

    def start(self, pending: bytes = b"", buffer_size: int = 1024) -> None:
        relay = Relay(self.session, buffer_size=buffer_size, stats=self.stats)
        self.thread = threading.Thread(target=relay.run, args=(pending,), daemon=True)
        self.thread.start()

    def wait(self) -> None:
        assert self.thread is not None
        self.thread.join(IO_TIMEOUT)
        assert not self.thread.is_alive()

    def close(self) -> None:
        self.session.close()
        self.client_app.close()
        self.upstream_app.close()


@pytest.fixture
def harness() -> Iterator[RelayHarness]:
    harness = RelayHarness()
    yield harness
    harness.close()


def test_forwards_both_directions(harness: RelayHarness) -> None:
    harness.start()

    harness.client_app.sendall(b"ping")
    assert recv_exactly(harness.upstream_app, 4) == b"ping"

    harness.upstream_app.sendall(b"pong!")
    assert recv_exactly(harness.client_app, 5) == b"pong!"


def test_preserves_order_of_large_transfer(harness: RelayHarness) -> None:
    payload = bytes(range(256)) * 2048
    harness.start(buffer_size=4096)

    sender = threading.Thread(target=harness.client_app.sendall, args=(payload,), daemon=True)
    sender.start()
    assert recv_exactly(harness.upstream_app, len(payload)) == payload
    sender.join(IO_TIMEOUT)


def test_pending_bytes_are_sent_first(harness: RelayHarness) -> None:
    harness.start(pending=b"early-")
    harness.client_app.sendall(b"late")
    assert recv_exactly(harness.upstream_app, 10) == b"early-late"


def test_upstream_close_closes_client(harness: RelayHarness) -> None:
    harness.start()
    harness.upstream_app.close()

    assert harness.client_app.recv(1) == b""
    harness.wait()
    assert harness.session.closed


def test_client_close_closes_upstream(harness: RelayHarness) -> None:
    harness.start()
    harness.client_app.sendall(b"bye")
    harness.client_app.close()

    assert recv_exactly(harness.upstream_app, 3) == b"bye"
    assert harness.upstream_app.recv(1) == b""
    harness.wait()


def test_external_close_stops_relay(harness: RelayHarness) -> None:
    harness.start()
    assert harness.session.close()
    harness.wait()
    assert harness.client_app.recv(1) == b""
    assert harness.upstream_app.recv(1) == b""


def test_counts_bytes_each_way(harness: RelayHarness) -> None:
    harness.start()
    harness.client_app.sendall(b"abc")
    recv_exactly(harness.upstream_app, 3)
    harness.upstream_app.sendall(b"defgh")
    recv_exactly(harness.client_app, 5)
    harness.upstream_app.close()
    harness.wait()

    assert harness.stats.total_bytes_sent == 3
    assert harness.stats.total_bytes_received == 5


def test_relay_requires_upstream() -> None:
    left, right = socket.socketpair()
    try:
        with pytest.raises(ValueError):
            Relay(ConnectionSession(left, "peer"))
    finally:
        left.close()
        right.close()


class TestSessionTeardown:
    def test_close_is_idempotent(self) -> None:
        left, right = socket.socketpair()
        session = ConnectionSession(left, "peer")
        upstream = FakeUpstream()
        session.attach_upstream(upstream)

        assert session.close()
        assert not session.close()
        assert session.stage is Stage.CLOSED
        assert upstream.closed
        right.close()

    def test_concurrent_close_closes_once(self) -> None:
        left, right = socket.socketpair()
        session = ConnectionSession(left, "peer")
        results: list[bool] = []
        barrier = threading.Barrier(8)

        def close() -> None:
            barrier.wait()
            results.append(session.close())

        threads = [threading.Thread(target=close) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(IO_TIMEOUT)

        assert results.count(True) == 1
        right.close()

    def test_stage_only_moves_forward(self) -> None:
        left, right = socket.socketpair()
        session = ConnectionSession(left, "peer")
        session.advance(Stage.AWAITING_AUTH)
        with pytest.raises(RuntimeError):
            session.advance(Stage.AWAITING_METHODS)
        with pytest.raises(RuntimeError):
            session.advance(Stage.AWAITING_AUTH)
        session.advance(Stage.AWAITING_REQUEST)
        session.close()
        with pytest.raises(RuntimeError):
            session.advance(Stage.RELAYING)
        right.close()

    def test_single_upstream(self) -> None:
        left, right = socket.socketpair()
        session = ConnectionSession(left, "peer")
        session.attach_upstream(FakeUpstream())
        with pytest.raises(RuntimeError):
            session.attach_upstream(FakeUpstream())
        session.close()
        right.close()

    def test_upstream_attached_after_close_is_released(self) -> None:
        left, right = socket.socketpair()
        session = ConnectionSession(left, "peer")
        session.close()
        upstream = FakeUpstream()
        session.attach_upstream(upstream)
        assert upstream.closed
        right.close()
