"""Utility functions for wifi-transfer."""

from wifi_transfer.utils.address import (
    get_local_addresses,
    get_primary_address,
    host_port_from_multiaddr,
    random_port,
    tcp_multiaddr,
    validate_port,
)

__all__ = [
    "get_local_addresses",
    "get_primary_address",
    "host_port_from_multiaddr",
    "random_port",
    "tcp_multiaddr",
    "validate_port",
]
