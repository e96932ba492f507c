"""Server configuration.

``ProxyConfig`` is built once (by the CLI or by the embedding program) and is
read-only afterwards. It is shared by every session and pickled into worker
processes, so everything it holds must be immutable and picklable.

Example:
    config = ProxyConfig(
        host="127.0.0.1",
        port=1080,
        authenticator=StaticCredentials("intern", "password123"),
    )
"""

from dataclasses import dataclass, field
from typing import Final

from socks_relay.core.lib.auth import Authenticator
from socks_relay.core.lib.dialer import DEFAULT_CONNECT_TIMEOUT
from socks_relay.core.lib.dns_handler import DEFAULT_NAMESERVERS
from socks_relay.core.lib.relay import BUFFER_SIZE

DEFAULT_HOST: Final = "0.0.0.0"
DEFAULT_PORT: Final = 1080
DEFAULT_USERNAME: Final = "intern"
DEFAULT_PASSWORD: Final = "password123"


@dataclass(frozen=True)
class ProxyConfig:
    """Construction parameters of a relay server.

    Attributes:
        authenticator: Credential source for username/password auth
        host: Address to listen on
        port: Port to listen on, 0 for an ephemeral port
        connect_timeout: Outbound connect timeout in seconds
        outbound_address: Local IP to bind outbound connections to
        nameservers: Nameservers tried when the system resolver fails
        buffer_size: Read size used while relaying
        reuse_port: Set SO_REUSEPORT so several processes share the port
    """

    authenticator: Authenticator
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    connect_timeout: float | None = DEFAULT_CONNECT_TIMEOUT
    outbound_address: str | None = None
    nameservers: tuple[str, ...] = field(default=DEFAULT_NAMESERVERS)
    buffer_size: int = BUFFER_SIZE
    reuse_port: bool = False

    def __post_init__(self) -> None:
        if not 0 <= self.port <= 65535:
            raise ValueError(f"Port out of range: {self.port}")
        if self.buffer_size <= 0:
            raise ValueError("Buffer size must be positive")

    @property
    def listen_address(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"
