"""Per-connection session state.

A ``ConnectionSession`` owns the client socket, the upstream socket once it
is dialled, the handshake buffer and the current ``Stage``. It is the single
owner responsible for closing both sockets, so either relay direction, the
handshake code or an outside caller can trigger teardown and the sockets are
still released exactly once.
"""

import contextlib
import socket
import threading
from enum import IntEnum

from loguru import logger

from socks_relay.core.lib.address import ConnectTarget
from socks_relay.core.lib.framer import Framer


class Stage(IntEnum):
    """Handshake stages, in the only order they may be entered."""

    AWAITING_METHODS = 1
    AWAITING_AUTH = 2
    AWAITING_REQUEST = 3
    RELAYING = 4
    CLOSED = 5


HANDSHAKE_STAGES = frozenset({Stage.AWAITING_METHODS, Stage.AWAITING_AUTH, Stage.AWAITING_REQUEST})


def _release(sock: socket.socket) -> None:
    # shutdown() first so a thread blocked in recv() on this socket wakes up
    with contextlib.suppress(OSError):
        sock.shutdown(socket.SHUT_RDWR)
    with contextlib.suppress(OSError):
        sock.close()


class ConnectionSession:
    """State of one accepted client connection.

    Attributes:
        peer: ``host:port`` of the client, for logging
        client: Client socket
        framer: Handshake buffer
        method: Negotiated authentication method
        authenticated: Whether the credentials were accepted
        target: Destination of the CONNECT request
        upstream: Outbound socket once dialled
    """

    def __init__(self, client: socket.socket, peer: str) -> None:
        self.peer = peer
        self.client = client
        self.framer = Framer()
        self.method: int | None = None
        self.authenticated = False
        self.target: ConnectTarget | None = None
        self.upstream: socket.socket | None = None
        self._stage = Stage.AWAITING_METHODS
        self._lock = threading.Lock()

    @property
    def stage(self) -> Stage:
        return self._stage

    @property
    def closed(self) -> bool:
        return self._stage is Stage.CLOSED

    def advance(self, stage: Stage) -> None:
        """Move to a later stage.

        Raises:
            RuntimeError: If ``stage`` is not after the current one
        """
        with self._lock:
            if stage <= self._stage:
                raise RuntimeError(f"Cannot move from {self._stage.name} to {stage.name}")
            self._stage = stage

    def attach_upstream(self, upstream: socket.socket) -> None:
        """Take ownership of the outbound socket.

        If the session was closed meanwhile the socket is released at once.
        """
        with self._lock:
            if self.upstream is not None:
                raise RuntimeError("Session already has an upstream connection")
            self.upstream = upstream
            closed = self._stage is Stage.CLOSED
        if closed:
            _release(upstream)

    def close(self) -> bool:
        """Close both connections.

        Safe to call any number of times from any thread.

        Returns:
            bool: True for the call that actually closed the session
        """
        with self._lock:
            if self._stage is Stage.CLOSED:
                return False
            self._stage = Stage.CLOSED
            upstream = self.upstream

        _release(self.client)
        if upstream is not None:
            _release(upstream)
        logger.debug(f"Session {self.peer} closed")
        return True
