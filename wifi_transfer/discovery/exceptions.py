from wifi_transfer.exceptions import (
    BaseTransferError,
)


class DiscoveryError(BaseTransferError):
    """Raised when there is an error on the discovery channel."""


class DiscoveryUnavailableError(DiscoveryError):
    """The mDNS socket could not be bound on any usable interface."""


class AdvertiseError(DiscoveryError):
    pass


class SessionIdCollisionError(AdvertiseError):
    """Another host already advertises a session under the same name."""


class InvalidServiceRecordError(DiscoveryError):
    pass


class ResolveTimeoutError(DiscoveryError):
    pass


class ResolveCancelledError(DiscoveryError):
    pass


class DiscoveryClosedError(DiscoveryError):
    """The record stream ended before a matching session was seen."""
