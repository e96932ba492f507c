"""SOCKS5 relay server with threaded and multi-process serving.

This module implements the listener side of the relay:
- A threaded TCP server that runs one handler thread per connection
- IPv4 and IPv6 listen addresses
- Optional SO_REUSEPORT so several worker processes share one port
- A supervised pool of worker processes, restarted when they die
- Optional live statistics panel (single process only)

Example:
    # Serve on localhost:1080 with 4 worker processes
    config = ProxyConfig(StaticCredentials("intern", "password123"), host="127.0.0.1")
    create_proxy_server(config, 4)
"""

import dataclasses
import multiprocessing
import socket
import socketserver
import time
from typing import TYPE_CHECKING, Final

from loguru import logger
from rich.console import Console

from socks_relay.core.lib.dialer import Dialer
from socks_relay.core.lib.dns_handler import DNSResolver

from .socks_handler import SocksRequestHandler

if TYPE_CHECKING:
    from socks_relay.core.config import ProxyConfig

console = Console()

PROCESS_JOIN_TIMEOUT: Final = 1.0  # seconds
STARTUP_DELAY: Final = 0.1  # seconds between worker starts
SUPERVISE_INTERVAL: Final = 1.0  # seconds between liveness checks


class SocksProxy(socketserver.ThreadingMixIn, socketserver.TCPServer):
    """Threaded SOCKS5 relay server.

    The server carries the shared, read-only collaborators of its sessions:
    ``config`` (authenticator, buffer size) and ``dialer``.

    Args:
        config: Server configuration
        handler_class: Request handler, one instance per connection
        bind_and_activate: Bind and listen right away
    """

    allow_reuse_address = True
    daemon_threads = True
    request_queue_size = 100

    def __init__(
        self,
        config: "ProxyConfig",
        handler_class: type[socketserver.BaseRequestHandler] = SocksRequestHandler,
        bind_and_activate: bool = True,
    ) -> None:
        self.config = config
        self.dialer = Dialer(
            resolver=DNSResolver(config.nameservers),
            timeout=config.connect_timeout,
            source_address=config.outbound_address,
        )
        if ":" in config.host:
            self.address_family = socket.AF_INET6
        super().__init__((config.host, config.port), handler_class, bind_and_activate)

    def server_bind(self) -> None:
        if self.config.reuse_port:
            if hasattr(socket, "SO_REUSEPORT"):
                self.socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)
            else:
                logger.warning("SO_REUSEPORT is not available on this platform")
        super().server_bind()

    def handle_error(self, request, client_address) -> None:
        """Log errors that escaped a handler; the server keeps running."""
        logger.opt(exception=True).error(f"Unhandled error serving {client_address}")


def run_server(config: "ProxyConfig") -> None:
    """Serve in the current process until interrupted.

    Args:
        config: Server configuration
    """
    try:
        server = SocksProxy(config)
    except OSError as e:
        logger.error(f"Cannot listen on {config.listen_address}: {e}")
        console.print(f"[red]Cannot listen on {config.listen_address}: {e}")
        return

    with server:
        host, port = server.server_address[:2]
        logger.info(f"Relay listening on {host}:{port}")
        try:
            server.serve_forever()
        except KeyboardInterrupt:
            logger.info("Relay process stopping")
    logger.info("Listener closed")


class WorkerPool:
    """Worker processes that each run ``run_server`` on a shared port.

    Args:
        config: Server configuration, must have ``reuse_port`` set
        size: Number of workers
    """

    def __init__(self, config: "ProxyConfig", size: int) -> None:
        self.config = config
        self.size = size
        self.workers: list[multiprocessing.Process] = []

    def _spawn(self) -> multiprocessing.Process:
        worker = multiprocessing.Process(target=run_server, args=(self.config,), daemon=True)
        worker.start()
        return worker

    def start(self) -> None:
        console.print(f"[bold green]Starting {self.size} worker processes...")
        for _ in range(self.size):
            self.workers.append(self._spawn())
            time.sleep(STARTUP_DELAY)

    def restart_dead(self) -> int:
        """Replace workers that exited. Returns how many were restarted."""
        restarted = 0
        for index, worker in enumerate(self.workers):
            if worker.is_alive():
                continue
            logger.warning(f"Worker {index} exited with code {worker.exitcode}, restarting")
            worker.join(timeout=PROCESS_JOIN_TIMEOUT)
            self.workers[index] = self._spawn()
            restarted += 1
        return restarted

    def supervise(self) -> None:
        """Restart dead workers until interrupted."""
        while True:
            self.restart_dead()
            time.sleep(SUPERVISE_INTERVAL)

    def stop(self) -> None:
        logger.info("Stopping worker processes")
        for worker in self.workers:
            if not worker.is_alive():
                continue
            worker.terminate()
            worker.join(timeout=PROCESS_JOIN_TIMEOUT)
            if worker.is_alive():
                logger.warning(f"Killing worker {worker.pid}")
                worker.kill()
        logger.info("All workers stopped")


def create_proxy_server(config: "ProxyConfig", num_processes: int = 1, show_stats: bool = False) -> None:
    """Start the relay server and block until interrupted.

    A single process serves in the calling process. More than one process
    starts a ``WorkerPool`` sharing the port through SO_REUSEPORT.

    Args:
        config: Server configuration
        num_processes: Number of worker processes to start
        show_stats: Show the live statistics panel (single process only)
    """
    if num_processes <= 1:
        if show_stats:
            from socks_relay.core.utils.prompt.proxy_ui import create_proxy_ui

            create_proxy_ui(config.listen_address).start()
        run_server(config)
        return

    if show_stats:
        logger.warning("Live statistics are only available with a single process")
    if not config.reuse_port:
        logger.warning("Worker processes need reuse_port; enabling it")
        config = dataclasses.replace(config, reuse_port=True)

    pool = WorkerPool(config, num_processes)
    try:
        pool.start()
        pool.supervise()
    except KeyboardInterrupt:
        logger.info("Received shutdown signal")
        console.print("\n[yellow]Shutting down relay server...")
    finally:
        pool.stop()
