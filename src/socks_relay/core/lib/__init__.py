"""Core relay library components."""

from .auth import Authenticator, CallableAuthenticator, CredentialTable, StaticCredentials, load_credentials
from .proxy_server import SocksProxy, create_proxy_server, run_server
from .proxy_stats import ProxyStats
from .relay import Relay
from .session import ConnectionSession, Stage
from .socks_handler import ConnectionHandler, SocksRequestHandler

__all__ = [
    "Authenticator",
    "CallableAuthenticator",
    "ConnectionHandler",
    "ConnectionSession",
    "create_proxy_server",
    "CredentialTable",
    "load_credentials",
    "ProxyStats",
    "Relay",
    "run_server",
    "SocksProxy",
    "SocksRequestHandler",
    "Stage",
    "StaticCredentials",
]
