"""Command-line interface for the SOCKS5 relay server.

This module provides the main command-line interface, handling:
- Command-line and environment-variable configuration
- Credential source selection
- Listen address validation
- Server and worker process startup
- Listing local interface addresses

Example:
    # Run from command line:
    $ socks-relay serve --port 1080 --username alice --password secret
    $ AUTH_USER=alice AUTH_PASS=secret socks-relay serve --processes 4
"""

from pathlib import Path

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from socks_relay import __version__
from socks_relay.core.config import DEFAULT_HOST, DEFAULT_PASSWORD, DEFAULT_PORT, DEFAULT_USERNAME, ProxyConfig
from socks_relay.core.lib.auth import Authenticator, StaticCredentials, load_credentials
from socks_relay.core.lib.dialer import DEFAULT_CONNECT_TIMEOUT
from socks_relay.core.lib.dns_handler import DEFAULT_NAMESERVERS
from socks_relay.core.network import is_local_address, list_interfaces
from socks_relay.core.proxy import create_proxy_server
from socks_relay.core.utils.log_config import LOG_DIR, configure_logging

console = Console()
app = typer.Typer(help="SOCKS5 relay with username/password authentication")


def _build_authenticator(username: str, password: str, credentials_file: Path | None) -> Authenticator:
    if credentials_file is not None:
        table = load_credentials(credentials_file)
        if not len(table):
            raise typer.BadParameter(f"{credentials_file} holds no credentials", param_hint="--credentials-file")
        logger.info(f"Loaded {len(table)} users from {credentials_file}")
        return table

    if username == DEFAULT_USERNAME and password == DEFAULT_PASSWORD:
        logger.warning("Using the built-in default credentials; set AUTH_USER / AUTH_PASS")
    logger.info("Using a single configured username/password pair")
    return StaticCredentials(username, password)


@app.callback(invoke_without_command=True)
def version_callback():
    """Show version information."""
    console.print(f"[cyan]SOCKS5 Relay v{__version__}[/cyan]")


@app.command(name="serve")
def serve(
    host: str = typer.Option(DEFAULT_HOST, "--host", envvar="LISTEN_HOST", help="Address to listen on"),
    port: int = typer.Option(DEFAULT_PORT, "--port", envvar="PORT", min=0, max=65535, help="Port to listen on"),
    username: str = typer.Option(DEFAULT_USERNAME, "--username", "-u", envvar="AUTH_USER", help="Required username"),
    password: str = typer.Option(DEFAULT_PASSWORD, "--password", envvar="AUTH_PASS", help="Required password"),
    credentials_file: Path | None = typer.Option(
        None,
        "--credentials-file",
        envvar="AUTH_FILE",
        exists=True,
        dir_okay=False,
        readable=True,
        help="File of username:password lines (overrides --username/--password)",
    ),
    processes: int = typer.Option(1, "--processes", "-p", min=1, help="Number of worker processes"),
    connect_timeout: float = typer.Option(
        DEFAULT_CONNECT_TIMEOUT, "--connect-timeout", min=0.1, help="Outbound connect timeout in seconds"
    ),
    outbound_address: str | None = typer.Option(
        None, "--outbound-address", help="Local address to bind outbound connections to"
    ),
    nameservers: list[str] | None = typer.Option(
        None, "--nameserver", "-n", help="Fallback DNS server (repeatable)"
    ),
    stats: bool = typer.Option(False, "--stats", help="Show live statistics (single process)"),
    debug: bool = typer.Option(
        default=False,
        help="Enable debug logging",
    ),
):
    """Start the SOCKS5 relay server."""
    configure_logging(debug=debug, log_dir=LOG_DIR)

    if not is_local_address(host):
        logger.error(f"{host} is not an address of this machine")
        console.print(f"[red]Error: {host} is not an address of this machine")
        raise typer.Exit(code=1)

    if outbound_address and not is_local_address(outbound_address):
        logger.error(f"{outbound_address} is not an address of this machine")
        console.print(f"[red]Error: outbound address {outbound_address} is not local")
        raise typer.Exit(code=1)

    try:
        authenticator = _build_authenticator(username, password, credentials_file)
    except ValueError as e:
        console.print(f"[red]Error: {e}")
        raise typer.Exit(code=1) from e

    config = ProxyConfig(
        authenticator=authenticator,
        host=host,
        port=port,
        connect_timeout=connect_timeout,
        outbound_address=outbound_address,
        nameservers=tuple(nameservers) if nameservers else DEFAULT_NAMESERVERS,
        reuse_port=processes > 1,
    )

    try:
        logger.info(f"Starting relay on {config.listen_address} with {processes} processes")
        create_proxy_server(config, processes, show_stats=stats)
    except KeyboardInterrupt:
        logger.info("Shutting down relay server")


@app.command(name="interfaces")
def interfaces(
    all_interfaces: bool = typer.Option(False, "--all", "-a", help="Include interfaces that are down"),
):
    """List local addresses the relay can listen on."""
    table = Table(title="Local Interfaces")
    table.add_column("Interface", style="cyan")
    table.add_column("Address", style="green")
    table.add_column("Family")
    table.add_column("Status")

    for iface in list_interfaces(include_down=all_interfaces):
        status = "up" if iface.is_up else "down"
        if iface.is_loopback:
            status += " (loopback)"
        table.add_row(iface.name, iface.ip, f"IPv{iface.family}", status)

    console.print(table)


if __name__ == "__main__":
    app()
