"""Live statistics panel for the relay server."""

import threading
import time

from rich.console import Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from socks_relay.core.lib.proxy_stats import ProxyStats, proxy_stats
from socks_relay.core.utils.utils import format_bytes, format_duration

from .prompt import PromptHandler, console

BANDWIDTH_THRESHOLD = 100  # bytes
MAX_LISTED_SESSIONS = 10


class ProxyUI(PromptHandler):
    """UI handler showing server totals and the longest-running sessions."""

    def __init__(self, listen_address: str, stats: ProxyStats = proxy_stats) -> None:
        """Initialize the proxy UI handler.

        Args:
            listen_address: ``host:port`` the server listens on
            stats: Statistics to render
        """
        super().__init__()
        self.listen_address = listen_address
        self.stats = stats
        self.running = True
        self._last_bandwidth = 0.0
        self._start_time = time.monotonic()
        self._refresh_rate = 0.5

    def _generate_table(self) -> Table:
        """Generate statistics table."""
        table = Table(show_header=False, box=None, padding=(0, 1))
        table.add_column("Property", style="cyan", no_wrap=True)
        table.add_column("Value", style="green", no_wrap=True)

        bandwidth = self.stats.get_bandwidth()
        if abs(bandwidth - self._last_bandwidth) > BANDWIDTH_THRESHOLD:
            self._last_bandwidth = bandwidth

        spinner_text = self._spinner.render(time.monotonic() - self._start_time)
        table.add_row("Bandwidth", Text.assemble(spinner_text, f" {format_bytes(self._last_bandwidth)}/s"))
        table.add_row("Active Sessions", str(self.stats.active_connections))
        table.add_row("Total Sessions", str(self.stats.total_connections))
        table.add_row("Auth Failures", str(self.stats.auth_failures))
        table.add_row("Sent Upstream", format_bytes(self.stats.total_bytes_sent))
        table.add_row("Received Upstream", format_bytes(self.stats.total_bytes_received))
        return table

    def _generate_sessions(self) -> Table:
        table = Table(show_header=True, box=None, padding=(0, 1))
        table.add_column("Client", style="cyan", no_wrap=True)
        table.add_column("Duration", style="green", no_wrap=True, justify="right")
        for peer, duration in self.stats.session_durations()[:MAX_LISTED_SESSIONS]:
            table.add_row(peer, format_duration(duration))
        return table

    def _generate_display(self) -> Panel:
        """Generate the main display panel."""
        title = Text(f"SOCKS5 Relay: {self.listen_address}", style="bold cyan")
        return Panel(
            Group(self._generate_table(), Text(""), self._generate_sessions()),
            title=title,
            subtitle="Press Ctrl+C to exit",
            border_style="blue",
            padding=(1, 2),
        )

    def run(self) -> None:
        """Refresh the panel until stopped."""
        console.clear()
        with self.create_live_display(self._generate_display()) as live:
            while self.running:
                live.update(self._generate_display(), refresh=True)
                time.sleep(self._refresh_rate)

    def stop(self) -> None:
        self.running = False


def create_proxy_ui(listen_address: str) -> threading.Thread:
    """Create and return UI thread."""
    ui = ProxyUI(listen_address)
    return threading.Thread(target=ui.run, name="stats-ui", daemon=True)
