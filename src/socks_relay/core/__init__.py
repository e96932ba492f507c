"""Core relay server implementation.

This package contains the core components of the SOCKS5 relay:
- Protocol handling (framing, address codec, handshake state machine)
- Authentication
- Bidirectional relaying
- Threaded and multi-process serving
- Statistics tracking
- Exception handling

The command-line interface lives in ``socks_relay.cmd`` and only builds
configuration for these components.
"""
