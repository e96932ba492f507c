"""Statistics tracking for the relay server.

Tracks, under a single lock:
- Active and total session counts, with the start time of each live session
- Bytes relayed upstream and downstream
- Authentication failures
- A short bandwidth history for the live panel

Example:
    from socks_relay.core.lib.proxy_stats import proxy_stats

    proxy_stats.connection_started("10.0.0.2:50123")
    proxy_stats.update_bytes(sent=1024, received=0)
"""

import threading
import time
from collections import deque
from datetime import UTC, datetime

BANDWIDTH_WINDOW = 5  # Seconds


class ProxyStats:
    """Thread-safe statistics tracker for the relay server."""

    def __init__(self) -> None:
        self.active_connections = 0
        self.total_connections = 0
        self.auth_failures = 0
        self.total_bytes_sent = 0
        self.total_bytes_received = 0
        self.sessions: dict[str, float] = {}
        self.bandwidth_history: deque[tuple[int, float]] = deque(maxlen=600)
        self.start_time = datetime.now(tz=UTC)
        self._lock = threading.Lock()

    def update_bytes(self, sent: int, received: int) -> None:
        """Record relayed bytes.

        Args:
            sent: Bytes forwarded from clients to upstreams
            received: Bytes forwarded from upstreams to clients
        """
        with self._lock:
            self.total_bytes_sent += sent
            self.total_bytes_received += received
            self.bandwidth_history.append((sent + received, time.time()))

    def get_bandwidth(self) -> float:
        """Average relayed bytes per second over the last few seconds."""
        with self._lock:
            cutoff = time.time() - BANDWIDTH_WINDOW
            total = sum(bytes_ for bytes_, ts in self.bandwidth_history if ts > cutoff)
            return total / BANDWIDTH_WINDOW

    def connection_started(self, peer: str) -> None:
        with self._lock:
            self.active_connections += 1
            self.total_connections += 1
            self.sessions[peer] = time.monotonic()

    def connection_ended(self, peer: str) -> None:
        with self._lock:
            self.active_connections -= 1
            self.sessions.pop(peer, None)

    def auth_failed(self) -> None:
        with self._lock:
            self.auth_failures += 1

    def session_durations(self) -> list[tuple[str, float]]:
        """Live sessions with their age in seconds, oldest first."""
        now = time.monotonic()
        with self._lock:
            items = sorted(self.sessions.items(), key=lambda item: item[1])
        return [(peer, now - started) for peer, started in items]


# Global statistics object
proxy_stats = ProxyStats()
