"""Bidirectional byte relay between a client and its upstream.

After a successful CONNECT the proxy is transparent: two pumps copy bytes
client -> upstream and upstream -> client. Each pump blocks in ``sendall``
until the destination accepts the data, which bounds memory use to one read
buffer per direction. The first pump to stop, for whatever reason, closes the
session; the socket shutdown wakes the other pump, which then stops too.
"""

import socket
import threading
from typing import Final

from loguru import logger

from socks_relay.core.lib.proxy_stats import ProxyStats, proxy_stats
from socks_relay.core.lib.session import ConnectionSession

BUFFER_SIZE: Final = 16384


class Relay:
    """Forward bytes both ways for one session until either side ends."""

    def __init__(
        self,
        session: ConnectionSession,
        buffer_size: int = BUFFER_SIZE,
        stats: ProxyStats = proxy_stats,
    ) -> None:
        if session.upstream is None:
            raise ValueError("Relay needs a session with an upstream connection")
        self.session = session
        self.buffer_size = buffer_size
        self.stats = stats

    def run(self, pending: bytes = b"") -> None:
        """Relay until teardown, blocking the calling thread.

        Args:
            pending: Client bytes received after the CONNECT request; they are
                sent upstream before anything else
        """
        client, upstream = self.session.client, self.session.upstream
        try:
            if pending:
                upstream.sendall(pending)
                self.stats.update_bytes(len(pending), 0)
        except OSError as exc:
            logger.debug(f"Relay {self.session.peer}: upstream write failed: {exc}")
            self.session.close()
            return

        downstream = threading.Thread(
            target=self._pump,
            args=(upstream, client, False),
            name=f"relay-{self.session.peer}",
            daemon=True,
        )
        downstream.start()
        self._pump(client, upstream, True)
        downstream.join()

    def _pump(self, source: socket.socket, destination: socket.socket, outbound: bool) -> None:
        direction = "client->upstream" if outbound else "upstream->client"
        try:
            while True:
                data = source.recv(self.buffer_size)
                if not data:
                    logger.debug(f"Relay {self.session.peer} {direction}: end of stream")
                    break
                destination.sendall(data)
                if outbound:
                    self.stats.update_bytes(len(data), 0)
                else:
                    self.stats.update_bytes(0, len(data))
        except OSError as exc:
            # Expected when the partner pump already closed the session
            if not self.session.closed:
                logger.debug(f"Relay {self.session.peer} {direction}: {exc}")
        finally:
            self.session.close()
