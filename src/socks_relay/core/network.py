"""Local network interface discovery.

This module provides functionality for:
- Listing the addresses assigned to local interfaces
- Checking that a listen address belongs to this machine

Example:
    for interface in list_interfaces():
        print(f"{interface.name}: {interface.ip}")
"""

import ipaddress
import socket
from dataclasses import dataclass

import psutil

WILDCARD_ADDRESSES = frozenset({"0.0.0.0", "::", ""})


@dataclass
class NetworkInterface:
    """Network interface address with its key properties.

    Attributes:
        name: Interface name (e.g., 'en0', 'eth0')
        ip: Address assigned to the interface
        family: 4 or 6
        is_up: Boolean indicating if the interface is up and running
        is_loopback: Boolean indicating a loopback address
    """

    name: str
    ip: str
    family: int
    is_up: bool
    is_loopback: bool


def list_interfaces(include_down: bool = False) -> list[NetworkInterface]:
    """List IPv4 and IPv6 addresses of the local interfaces.

    Args:
        include_down: Also list interfaces that are down

    Returns:
        list[NetworkInterface]: One entry per address, IPv4 first
    """
    stats = psutil.net_if_stats()
    interfaces = []
    for name, addrs in psutil.net_if_addrs().items():
        iface_stats = stats.get(name)
        is_up = bool(iface_stats and iface_stats.isup)
        if not is_up and not include_down:
            continue

        for addr in addrs:
            if addr.family == socket.AF_INET:
                family = 4
            elif addr.family == socket.AF_INET6:
                family = 6
            else:
                continue
            ip = addr.address.split("%", 1)[0]
            interfaces.append(
                NetworkInterface(
                    name=name,
                    ip=ip,
                    family=family,
                    is_up=is_up,
                    is_loopback=ipaddress.ip_address(ip).is_loopback,
                )
            )

    return sorted(interfaces, key=lambda iface: (iface.family, iface.is_loopback, iface.name))


def is_local_address(ip: str) -> bool:
    """Verify that ``ip`` can be bound on this machine.

    Wildcard addresses are always accepted. Host names are resolved and
    accepted when any of their addresses is local.
    """
    if ip in WILDCARD_ADDRESSES:
        return True

    try:
        candidates = {ipaddress.ip_address(ip)}
    except ValueError:
        try:
            addrinfo = socket.getaddrinfo(ip, None, type=socket.SOCK_STREAM)
        except socket.gaierror:
            return False
        candidates = {ipaddress.ip_address(sockaddr[0].split("%", 1)[0]) for *_, sockaddr in addrinfo}

    local = {ipaddress.ip_address(iface.ip) for iface in list_interfaces(include_down=True)}
    return bool(candidates & local)
