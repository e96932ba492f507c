"""Public entry points of the relay server.

Example:
    from socks_relay.core.proxy import ProxyConfig, StaticCredentials, create_proxy_server

    config = ProxyConfig(StaticCredentials("intern", "password123"), host="127.0.0.1")
    create_proxy_server(config)
"""

from .config import ProxyConfig
from .lib import (
    CallableAuthenticator,
    CredentialTable,
    SocksProxy,
    StaticCredentials,
    create_proxy_server,
    load_credentials,
    run_server,
)

__all__ = [
    "CallableAuthenticator",
    "create_proxy_server",
    "CredentialTable",
    "load_credentials",
    "ProxyConfig",
    "run_server",
    "SocksProxy",
    "StaticCredentials",
]
