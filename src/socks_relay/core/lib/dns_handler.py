"""DNS resolution for domain-name CONNECT targets using dnspython."""

import socket
import threading
import time
from collections.abc import Sequence
from typing import TYPE_CHECKING, Final, cast

import dns.exception
import dns.resolver
from loguru import logger

from socks_relay.core.exceptions import DNSResolutionError

if TYPE_CHECKING:
    from dns.resolver import Resolver

# DNS resolver constants
DEFAULT_TIMEOUT: Final = 1.0  # seconds
DEFAULT_LIFETIME: Final = 3.0  # seconds
CACHE_TTL: Final = 60.0  # seconds
CACHE_MAX_ENTRIES: Final = 4096
DEFAULT_NAMESERVERS: Final = (
    "1.1.1.1",  # Cloudflare
    "8.8.8.8",  # Google
    "9.9.9.9",  # Quad9
)
RECORD_TYPES: Final = ("A", "AAAA")


def _unique(addresses: list[str]) -> list[str]:
    return list(dict.fromkeys(addresses))


class DNSResolver:
    """Resolve domain names: system resolver first, then public nameservers.

    Every address of an answer is returned, in resolver order, so the caller
    can fall back to later addresses. Answers are cached for ``cache_ttl``
    seconds in a cache of at most ``max_entries`` names; expired entries are
    pruned whenever a new answer is stored. The resolver is shared by all
    sessions of a server process, so the cache is lock-protected.
    """

    def __init__(
        self,
        nameservers: Sequence[str] = DEFAULT_NAMESERVERS,
        cache_ttl: float = CACHE_TTL,
        max_entries: int = CACHE_MAX_ENTRIES,
    ) -> None:
        self.nameservers = list(nameservers)
        self.cache_ttl = cache_ttl
        self.max_entries = max_entries
        self._cache: dict[str, tuple[list[str], float]] = {}
        self._lock = threading.Lock()

    def _make_resolver(self, nameservers: Sequence[str]) -> "Resolver":
        resolver = cast("Resolver", dns.resolver.Resolver(configure=False))
        resolver.timeout = DEFAULT_TIMEOUT
        resolver.lifetime = DEFAULT_LIFETIME
        resolver.nameservers = list(nameservers)
        return resolver

    def _try_system_dns(self, domain: str) -> list[str]:
        """Try resolving using the system resolver."""
        try:
            addrinfo = socket.getaddrinfo(domain, None, type=socket.SOCK_STREAM)
        except (socket.gaierror, UnicodeError) as e:
            logger.debug(f"System DNS resolution failed for {domain}: {e}")
            return []
        return _unique([sockaddr[0] for *_, sockaddr in addrinfo])

    def _query(self, resolver: "Resolver", domain: str) -> list[str]:
        addresses = []
        for record_type in RECORD_TYPES:
            try:
                answer = resolver.resolve(domain, record_type)
            except dns.exception.DNSException as e:
                logger.debug(f"{record_type} lookup for {domain} via {resolver.nameservers} failed: {e}")
                continue
            addresses.extend(str(record) for record in answer)
        return _unique(addresses)

    def _try_configured_resolver(self, domain: str) -> list[str]:
        """Try resolving using all configured nameservers together."""
        if not self.nameservers:
            return []
        return self._query(self._make_resolver(self.nameservers), domain)

    def _try_alternative_nameservers(self, domain: str) -> list[str]:
        """Try each configured nameserver on its own."""
        for nameserver in self.nameservers:
            if addresses := self._query(self._make_resolver([nameserver]), domain):
                return addresses
        return []

    def _cached(self, domain: str) -> list[str] | None:
        with self._lock:
            entry = self._cache.get(domain)
            if entry is None:
                return None
            addresses, expires = entry
            if expires < time.monotonic():
                del self._cache[domain]
                return None
            return list(addresses)

    def _store(self, domain: str, addresses: list[str]) -> list[str]:
        now = time.monotonic()
        with self._lock:
            for name in [name for name, (_, expires) in self._cache.items() if expires < now]:
                del self._cache[name]
            self._cache.pop(domain, None)
            # dicts keep insertion order, so the first key is the oldest entry
            while self._cache and len(self._cache) >= self.max_entries:
                del self._cache[next(iter(self._cache))]
            self._cache[domain] = (addresses, now + self.cache_ttl)
        return list(addresses)

    def resolve(self, domain: str) -> list[str]:
        """Resolve domain name to its IP addresses.

        Args:
            domain: Domain name to resolve

        Returns:
            list[str]: IPv4 and IPv6 addresses in the order they should be tried

        Raises:
            DNSResolutionError: If every resolution method fails
        """
        if addresses := self._cached(domain):
            return addresses

        for method in (
            self._try_system_dns,
            self._try_configured_resolver,
            self._try_alternative_nameservers,
        ):
            if addresses := method(domain):
                logger.debug(f"Resolved {domain} to {', '.join(addresses)}")
                return self._store(domain, addresses)

        error_msg = f"Could not resolve {domain} using any available method"
        logger.warning(error_msg)
        raise DNSResolutionError(error_msg)
