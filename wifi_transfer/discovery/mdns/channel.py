"""
mDNS/DNS-SD discovery channel for wifi-transfer.

A sender advertises its session as an ``_http._tcp`` service named
``Local File Transfer: <session id>``; a receiver browses the same type and
picks the record with the matching name. Uses zeroconf for mDNS broadcast and
listen; blocking zeroconf calls are pushed to trio worker threads.
"""

import logging

import trio
from zeroconf import (
    Zeroconf,
)

from wifi_transfer.config import (
    SERVICE_TYPE,
)
from wifi_transfer.discovery.exceptions import (
    DiscoveryUnavailableError,
)

from .advertiser import (
    ServiceHandle,
)
from .resolver import (
    SessionResolver,
)

logger = logging.getLogger("wifi_transfer.discovery.mdns")


class DiscoveryChannel:
    """Owns the process's single zeroconf instance."""

    def __init__(self, service_type: str = SERVICE_TYPE) -> None:
        self.service_type = service_type
        self.zeroconf: Zeroconf | None = None
        self._closed = False

    def open(self) -> "DiscoveryChannel":
        """
        Bind the mDNS sockets.

        :raise DiscoveryUnavailableError: no interface could be bound
        """
        if self.zeroconf is None:
            try:
                self.zeroconf = Zeroconf()
            except OSError as error:
                raise DiscoveryUnavailableError(
                    f"Could not open the mDNS discovery channel: {error}"
                ) from error
            logger.debug("mDNS discovery channel opened")
        return self

    def _require(self) -> Zeroconf:
        if self._closed:
            raise DiscoveryUnavailableError("Discovery channel is closed")
        return self.open().zeroconf  # type: ignore[return-value]

    def advertise(self, session_id: str, port: int) -> ServiceHandle:
        return ServiceHandle(
            self._require(), session_id, port, service_type=self.service_type
        )

    def resolver(self) -> SessionResolver:
        return SessionResolver(self._require(), service_type=self.service_type)

    async def close(self) -> None:
        """Release the zeroconf instance. Safe to call repeatedly."""
        self._closed = True
        zeroconf, self.zeroconf = self.zeroconf, None
        if zeroconf is not None:
            logger.debug("Stopping mDNS discovery channel")
            await trio.to_thread.run_sync(zeroconf.close)
