"""Command line interface modules.

This package provides the command-line tools for:
- Starting the relay server
- Listing local interface addresses to listen on

The command modules build an immutable ``ProxyConfig`` from options and
environment variables and hand it to the core server.
"""
