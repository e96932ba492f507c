"""Outbound connection capability used by the CONNECT command."""

import socket
from typing import Final

from loguru import logger

from socks_relay.core.exceptions import DialError, DNSResolutionError
from socks_relay.core.lib.address import AddressType, ConnectTarget
from socks_relay.core.lib.dns_handler import DNSResolver

DEFAULT_CONNECT_TIMEOUT: Final = 10.0  # seconds


class Dialer:
    """Open TCP connections to CONNECT targets.

    Args:
        resolver: Resolver for domain-name targets
        timeout: Connect timeout in seconds, None to wait forever
        source_address: Local IP to bind outbound connections to
    """

    def __init__(
        self,
        resolver: DNSResolver | None = None,
        timeout: float | None = DEFAULT_CONNECT_TIMEOUT,
        source_address: str | None = None,
    ) -> None:
        self.resolver = resolver or DNSResolver()
        self.timeout = timeout
        self.source_address = source_address

    def __call__(self, target: ConnectTarget) -> socket.socket:
        """Connect to ``target``.

        Domain targets are tried address by address, in resolver order,
        until one accepts.

        Returns:
            socket.socket: Connected socket in blocking mode

        Raises:
            DialError: If the name cannot be resolved or no address accepts
        """
        hosts = [target.host]
        if target.atyp is AddressType.DOMAIN:
            try:
                hosts = self.resolver.resolve(target.host)
            except DNSResolutionError as exc:
                raise DialError(f"Cannot resolve {target.host}") from exc

        source = (self.source_address, 0) if self.source_address else None
        last_error: Exception | None = None
        for host in hosts:
            try:
                upstream = socket.create_connection(
                    (host, target.port), timeout=self.timeout, source_address=source
                )
            except (OSError, UnicodeError) as exc:
                logger.debug(f"Connect to {target} via {host} failed: {exc}")
                last_error = exc
                continue

            upstream.settimeout(None)
            logger.debug(f"Connected to {target} via {host}")
            return upstream

        raise DialError(f"Cannot connect to {target}: {last_error}") from last_error
