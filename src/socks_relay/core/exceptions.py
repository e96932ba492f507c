"""Custom exceptions for the relay server.

This module defines the error taxonomy used by the SOCKS5 relay:
- Protocol errors (malformed frames, unsupported commands or address types)
- Authentication failures
- Network failures (outbound dial errors, resets)
- Early transport closure
- DNS resolution failures

Every one of these is fatal to a single session only. The connection handler
catches them, writes a best-effort reply where the protocol defines one and
closes the session.

Example:
    try:
        handler.feed(data)
    except ProtocolError as e:
        if e.reply is not None:
            client.sendall(encode_failure(e.reply))
"""


class ProxyError(Exception):
    """Base exception for proxy errors."""


class ProtocolError(ProxyError):
    """Raised when a client sends a malformed or unsupported frame.

    Args:
        message: Human readable description
        reply: REP code to send before closing, or None for a silent close
    """

    def __init__(self, message: str, reply: int | None = None) -> None:
        super().__init__(message)
        self.reply = reply


class AddressDecodeError(ProtocolError):
    """Raised when a request carries an unknown or undecodable address."""


class AuthError(ProxyError):
    """Raised when username/password subnegotiation fails."""


class NetworkError(ProxyError):
    """Raised on network failures outside the protocol."""


class DialError(NetworkError):
    """Raised when the outbound connection cannot be established."""


class TransportClosed(ProxyError):
    """Raised when the client closes the connection mid-handshake."""


class DNSResolutionError(ProxyError):
    """Raised when DNS resolution fails."""
