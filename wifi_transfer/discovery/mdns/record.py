from dataclasses import (
    dataclass,
)
from multiaddr import (
    Multiaddr,
)
from zeroconf import (
    IPVersion,
    ServiceInfo,
)

from wifi_transfer.config import (
    NAME_PREFIX,
    SERVICE_TYPE,
)
from wifi_transfer.discovery.exceptions import (
    InvalidServiceRecordError,
)
from wifi_transfer.utils.address import (
    tcp_multiaddr,
)


def session_service_name(session_id: str) -> str:
    """Instance name a sender advertises for ``session_id``."""
    return f"{NAME_PREFIX}{session_id}"


def instance_name(full_name: str, service_type: str = SERVICE_TYPE) -> str:
    """Strip the ``.<service type>`` suffix from a DNS-SD service name."""
    suffix = f".{service_type}"
    if full_name.endswith(suffix):
        return full_name[: -len(suffix)]
    return full_name


@dataclass(frozen=True)
class ServiceRecord:
    """A session advertisement as observed on the discovery channel."""

    name: str
    service_type: str = SERVICE_TYPE
    port: int | None = None
    addresses: tuple[str, ...] = ()

    @classmethod
    def from_service_info(cls, info: ServiceInfo) -> "ServiceRecord":
        """
        Build a record from zeroconf's resolved ``ServiceInfo``.

        Fields zeroconf could not resolve come through empty; call
        :meth:`validate` before dialing.
        """
        service_type = info.type or SERVICE_TYPE
        addresses = tuple(info.parsed_addresses(IPVersion.V4Only)) + tuple(
            info.parsed_addresses(IPVersion.V6Only)
        )
        return cls(
            name=instance_name(info.name, service_type),
            service_type=service_type,
            port=info.port or None,
            addresses=addresses,
        )

    def validate(self) -> "ServiceRecord":
        if not self.addresses:
            raise InvalidServiceRecordError(f"Record {self.name!r} has no addresses")
        if self.port is None or not 1 <= self.port <= 65535:
            raise InvalidServiceRecordError(
                f"Record {self.name!r} has no usable port: {self.port!r}"
            )
        return self

    @property
    def primary_address(self) -> str:
        # Only the first advertised address is ever dialed
        return self.validate().addresses[0]

    def to_multiaddr(self) -> Multiaddr:
        self.validate()
        assert self.port is not None
        try:
            return tcp_multiaddr(self.addresses[0], self.port)
        except ValueError as error:
            raise InvalidServiceRecordError(
                f"Record {self.name!r} has an unusable address: {error}"
            ) from error
