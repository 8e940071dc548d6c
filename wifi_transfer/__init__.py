from importlib.metadata import (
    PackageNotFoundError,
    version as __version,
)

from wifi_transfer.discovery.mdns import (
    DiscoveryChannel,
    ServiceHandle,
    ServiceRecord,
    SessionResolver,
)
from wifi_transfer.lifecycle import (
    LifecycleGuard,
)
from wifi_transfer.session import (
    accept_file,
    generate_session_id,
    send_file,
)
from wifi_transfer.transfer import (
    ProgressState,
    TransferClient,
    TransferServer,
    TransferSession,
)
from wifi_transfer.utils.logging import (
    setup_logging,
)

# Initialize logging configuration
setup_logging()

try:
    __version__ = __version("wifi-transfer")
except PackageNotFoundError:
    __version__ = "unknown"

__all__ = [
    "DiscoveryChannel",
    "LifecycleGuard",
    "ProgressState",
    "ServiceHandle",
    "ServiceRecord",
    "SessionResolver",
    "TransferClient",
    "TransferServer",
    "TransferSession",
    "accept_file",
    "generate_session_id",
    "send_file",
]
