from .client import (
    ClientState,
    TransferClient,
)
from .progress import (
    ProgressState,
    ProgressTracker,
)
from .protocol import (
    TransferSession,
)
from .server import (
    ServerState,
    TransferServer,
)

__all__ = [
    "ClientState",
    "ProgressState",
    "ProgressTracker",
    "ServerState",
    "TransferClient",
    "TransferServer",
    "TransferSession",
]
