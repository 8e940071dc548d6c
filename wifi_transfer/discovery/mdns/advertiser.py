import logging
import socket

import trio
from zeroconf import (
    EventLoopBlocked,
    NonUniqueNameException,
    ServiceInfo,
    Zeroconf,
)

from wifi_transfer.config import (
    SERVICE_TYPE,
)
from wifi_transfer.discovery.exceptions import (
    AdvertiseError,
    SessionIdCollisionError,
)
from wifi_transfer.discovery.mdns.record import (
    session_service_name,
)
from wifi_transfer.utils.address import (
    get_local_addresses,
    validate_port,
)

logger = logging.getLogger("wifi_transfer.discovery.mdns.advertiser")


class ServiceHandle:
    """
    Advertises one transfer session on the local network using mDNS/zeroconf.

    The record is named after the session id and points at the port the
    transfer server listens on. ``retract`` withdraws it and may be called any
    number of times.
    """

    def __init__(
        self,
        zeroconf: Zeroconf,
        session_id: str,
        port: int,
        addresses: list[str] | None = None,
        service_type: str = SERVICE_TYPE,
    ) -> None:
        self.zeroconf = zeroconf
        self.session_id = session_id
        self.port = validate_port(port)
        self.service_type = service_type
        self.addresses = list(addresses) if addresses else get_local_addresses()
        self.service_name = f"{session_service_name(session_id)}.{service_type}"
        self._published = False
        self._retracted = False

        self.service_info = ServiceInfo(
            type_=self.service_type,
            name=self.service_name,
            port=self.port,
            properties={b"id": session_id.encode(), b"path": b"/"},
            server=f"{socket.gethostname()}.local.",
            parsed_addresses=self.addresses,
        )

    @property
    def published(self) -> bool:
        return self._published and not self._retracted

    async def publish(self) -> "ServiceHandle":
        """
        Register the session record on the network.

        :raise SessionIdCollisionError: another host already uses this name
        :raise AdvertiseError: the record could not be broadcast
        """
        if self._published:
            return self
        try:
            # register_service checks the name and announces with blocking sleeps
            await trio.to_thread.run_sync(
                self.zeroconf.register_service, self.service_info
            )
        except NonUniqueNameException as error:
            raise SessionIdCollisionError(
                f"Session name {self.service_name!r} is already advertised"
            ) from error
        except (EventLoopBlocked, OSError) as error:
            raise AdvertiseError(
                f"Could not advertise {self.service_name!r}: {error}"
            ) from error
        self._published = True
        logger.debug(
            "mDNS service registered: %s on %s port %d",
            self.service_name,
            self.addresses,
            self.port,
        )
        return self

    async def retract(self) -> None:
        """Unregister the session record, if it is still on the network."""
        if not self._published or self._retracted:
            return
        self._retracted = True
        try:
            await trio.to_thread.run_sync(
                self.zeroconf.unregister_service, self.service_info
            )
            logger.debug("mDNS service unregistered: %s", self.service_name)
        except EventLoopBlocked as e:
            logger.warning(
                "EventLoopBlocked while unregistering mDNS '%s': %s",
                self.service_name,
                e,
            )
        except Exception as e:
            # The channel may already be torn down; nothing is left to retract
            logger.warning(
                "Error during mDNS unregistration for '%s': %r",
                self.service_name,
                e,
            )


async def publish(
    zeroconf: Zeroconf,
    session_id: str,
    port: int,
    addresses: list[str] | None = None,
) -> ServiceHandle:
    """Advertise ``session_id`` on ``port`` and return the retractable handle."""
    return await ServiceHandle(zeroconf, session_id, port, addresses).publish()
