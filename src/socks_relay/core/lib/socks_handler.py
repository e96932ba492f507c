"""SOCKS5 connection handler.

Implements the server side of RFC 1928 with RFC 1929 username/password
authentication:
- Method negotiation (username/password is the only method offered)
- Username/password subnegotiation
- CONNECT requests to IPv4, IPv6 and domain-name targets
- Hand-off to the bidirectional relay

The handshake is an explicit state machine over ``Stage``: every read feeds
the session's framer and the routine for the current stage runs for as long
as complete frames are buffered. Replies are written synchronously to the
client socket.

Example:
    # The request handler is used by the SocksProxy server class
    server = SocksProxy(config)
    server.serve_forever()
"""

import contextlib
import socketserver
import struct
from collections.abc import Callable
from typing import TYPE_CHECKING, Final

from loguru import logger

from socks_relay.core.exceptions import AuthError, DialError, ProtocolError, TransportClosed
from socks_relay.core.lib.address import (
    REP_CONNECTION_REFUSED,
    REP_SUCCESS,
    SOCKS_VERSION,
    ConnectTarget,
    encode_failure,
    encode_reply,
)
from socks_relay.core.lib.auth import Authenticator
from socks_relay.core.lib.framer import AUTH_REQUEST, AUTH_VERSION, CONNECT_REQUEST, METHOD_SELECTION
from socks_relay.core.lib.proxy_stats import ProxyStats, proxy_stats
from socks_relay.core.lib.relay import BUFFER_SIZE, Relay
from socks_relay.core.lib.session import HANDSHAKE_STAGES, ConnectionSession, Stage

if TYPE_CHECKING:
    import socket

    from socks_relay.core.lib.proxy_server import SocksProxy

# Authentication methods
METHOD_USERNAME_PASSWORD: Final = 0x02
METHOD_NO_ACCEPTABLE: Final = 0xFF

# Subnegotiation status
AUTH_SUCCESS: Final = 0x00
AUTH_FAILURE: Final = 0x01

Dial = Callable[[ConnectTarget], "socket.socket"]


class ConnectionHandler:
    """Handshake state machine for one session.

    Args:
        session: Session to drive
        authenticator: Credential source for the subnegotiation
        dial: Opens the outbound connection for a CONNECT target
        buffer_size: Read size for handshake and relay reads
        stats: Statistics sink
    """

    def __init__(
        self,
        session: ConnectionSession,
        authenticator: Authenticator,
        dial: Dial,
        buffer_size: int = BUFFER_SIZE,
        stats: ProxyStats = proxy_stats,
    ) -> None:
        self.session = session
        self.authenticator = authenticator
        self.dial = dial
        self.buffer_size = buffer_size
        self.stats = stats
        self._steps: dict[Stage, Callable[[], bool]] = {
            Stage.AWAITING_METHODS: self._on_methods,
            Stage.AWAITING_AUTH: self._on_auth,
            Stage.AWAITING_REQUEST: self._on_request,
        }

    def _send(self, data: bytes) -> None:
        self.session.client.sendall(data)

    def _send_failure(self, status: int) -> None:
        with contextlib.suppress(OSError):
            self._send(encode_failure(status))

    def _on_methods(self) -> bool:
        """Answer the greeting once it is fully buffered."""
        greeting = self.session.framer.try_extract(METHOD_SELECTION)
        if greeting is None:
            return False

        if METHOD_USERNAME_PASSWORD not in greeting.methods:
            self._send(struct.pack("!BB", SOCKS_VERSION, METHOD_NO_ACCEPTABLE))
            raise ProtocolError("Client did not offer username/password auth")

        self.session.method = METHOD_USERNAME_PASSWORD
        self._send(struct.pack("!BB", SOCKS_VERSION, METHOD_USERNAME_PASSWORD))
        self.session.advance(Stage.AWAITING_AUTH)
        return True

    def _on_auth(self) -> bool:
        """Check the credentials once the subnegotiation is fully buffered."""
        request = self.session.framer.try_extract(AUTH_REQUEST)
        if request is None:
            return False

        ok = self.authenticator.validate(request.username, request.password)
        self._send(struct.pack("!BB", AUTH_VERSION, AUTH_SUCCESS if ok else AUTH_FAILURE))
        if not ok:
            self.stats.auth_failed()
            raise AuthError(f"Auth failed (username={request.username!r})")

        logger.info(f"Auth success from {self.session.peer}")
        self.session.authenticated = True
        self.session.advance(Stage.AWAITING_REQUEST)
        return True

    def _on_request(self) -> bool:
        """Dial the requested target once the request is fully buffered."""
        request = self.session.framer.try_extract(CONNECT_REQUEST)
        if request is None:
            return False

        target = request.target
        self.session.target = target
        logger.info(f"Request from {self.session.peer} -> {target}")

        try:
            upstream = self.dial(target)
        except (DialError, OSError) as exc:
            self._send_failure(REP_CONNECTION_REFUSED)
            raise DialError(f"Remote connection error to {target}: {exc}") from exc

        self.session.attach_upstream(upstream)
        if self.session.closed:
            logger.debug(f"Session {self.session.peer} closed while dialling {target}")
            return False
        bound_address, bound_port = upstream.getsockname()[:2]
        self._send(encode_reply(REP_SUCCESS, bound_address, bound_port))
        self.session.advance(Stage.RELAYING)
        return True

    def feed(self, data: bytes) -> None:
        """Process newly received client bytes.

        Runs stage routines until one needs more input or the handshake is
        over.

        Raises:
            TransportClosed: If ``data`` is empty (the client closed)
            ProtocolError: On malformed frames, after any defined reply
            AuthError: On rejected credentials, after the failure reply
            DialError: If the target cannot be reached, after the reply
        """
        if not data:
            raise TransportClosed(f"Client {self.session.peer} closed during {self.session.stage.name}")

        self.session.framer.feed(data)
        while self.session.stage in HANDSHAKE_STAGES:
            if not self._steps[self.session.stage]():
                break

    def handshake(self) -> bool:
        """Read from the client until the handshake ends.

        Returns:
            bool: True when the session reached RELAYING
        """
        try:
            while self.session.stage in HANDSHAKE_STAGES:
                self.feed(self.session.client.recv(self.buffer_size))
        except ProtocolError as exc:
            if exc.reply is not None:
                self._send_failure(exc.reply)
            logger.warning(f"Protocol error from {self.session.peer}: {exc}")
        except AuthError as exc:
            logger.warning(f"{exc} from {self.session.peer}")
        except DialError as exc:
            logger.warning(str(exc))
        except TransportClosed as exc:
            logger.debug(str(exc))
        except OSError as exc:
            logger.debug(f"Client {self.session.peer} transport error: {exc}")
        return self.session.stage is Stage.RELAYING

    def run(self) -> None:
        """Serve the session from greeting to teardown."""
        try:
            if self.handshake():
                Relay(self.session, self.buffer_size, self.stats).run(self.session.framer.drain())
        finally:
            self.session.close()


class SocksRequestHandler(socketserver.BaseRequestHandler):
    """Handle incoming SOCKS5 connections."""

    server: "SocksProxy"

    def handle(self) -> None:
        """Handle incoming SOCKS5 connection."""
        host, port = self.client_address[:2]
        peer = f"{host}:{port}"
        session = ConnectionSession(self.request, peer)
        config = self.server.config

        proxy_stats.connection_started(peer)
        try:
            ConnectionHandler(
                session,
                config.authenticator,
                self.server.dialer,
                buffer_size=config.buffer_size,
            ).run()
        except Exception:
            logger.exception(f"Error handling SOCKS connection from {peer}")
        finally:
            session.close()
            proxy_stats.connection_ended(peer)
