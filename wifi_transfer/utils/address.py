from __future__ import annotations

import ipaddress
import random
import socket

from multiaddr import Multiaddr
from multiaddr.exceptions import ProtocolLookupError
from multiaddr.utils import get_network_addrs

from wifi_transfer.config import (
    MAX_RANDOM_PORT,
    MIN_RANDOM_PORT,
)


def _safe_get_network_addrs(ip_version: int) -> list[str]:
    """
    Internal safe wrapper. Returns a list of IP addresses for the requested IP version.

    :param ip_version: 4 or 6
    """
    try:
        return get_network_addrs(ip_version) or []
    except Exception:  # pragma: no cover - platform dependent
        return []


def _is_loopback(ip: str) -> bool:
    try:
        return ipaddress.ip_address(ip.split("%", 1)[0]).is_loopback
    except ValueError:
        return False


def get_local_addresses() -> list[str]:
    """
    Non-loopback IPv4 addresses of this host, in interface order.

    Falls back to the primary address when interface enumeration yields
    nothing usable.
    """
    seen: list[str] = []
    for ip in _safe_get_network_addrs(4):
        if ip not in seen and not _is_loopback(ip):
            seen.append(ip)
    if not seen:
        seen.append(get_primary_address())
    return seen


def get_primary_address() -> str:
    """Get the address this host would use to reach the wider network."""
    try:
        # Connecting a UDP socket only selects a route, nothing is sent
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
            s.connect(("8.8.8.8", 80))
            return s.getsockname()[0]
    except OSError:
        return "127.0.0.1"


def random_port() -> int:
    """Pick a port in the unprivileged range the sender binds by default."""
    return random.randint(MIN_RANDOM_PORT, MAX_RANDOM_PORT)


def validate_port(port: int) -> int:
    if not 1 <= port <= 65535:
        raise ValueError(f"Port {port} is outside 1-65535")
    return port


def tcp_multiaddr(host: str, port: int) -> Multiaddr:
    """
    Build the TCP multiaddr for an endpoint.

    :param host: IPv4 or IPv6 literal
    :param port: TCP port
    :raise ValueError: when ``host`` is not an IP literal or the port is invalid
    """
    validate_port(port)
    ip = ipaddress.ip_address(host.split("%", 1)[0])
    proto = "ip4" if ip.version == 4 else "ip6"
    return Multiaddr(f"/{proto}/{ip}/tcp/{port}")


def _value_for(maddr: Multiaddr, proto: str) -> str | None:
    try:
        return maddr.value_for_protocol(proto)
    except ProtocolLookupError:
        return None


def host_port_from_multiaddr(maddr: Multiaddr) -> tuple[str, int]:
    """
    Extract the dialable host and port from a TCP multiaddr.

    :raise ValueError: when the multiaddr lacks an IP or TCP component
    """
    host = _value_for(maddr, "ip4") or _value_for(maddr, "ip6")
    if not host:
        raise ValueError(f"No IP address in multiaddr {maddr}")

    port_str = _value_for(maddr, "tcp")
    if port_str is None:
        raise ValueError(f"No TCP port in multiaddr {maddr}")
    return host, validate_port(int(port_str))


__all__ = [
    "get_local_addresses",
    "get_primary_address",
    "host_port_from_multiaddr",
    "random_port",
    "tcp_multiaddr",
    "validate_port",
]
