from .advertiser import (
    ServiceHandle,
    publish,
)
from .channel import (
    DiscoveryChannel,
)
from .record import (
    ServiceRecord,
    session_service_name,
)
from .resolver import (
    SessionListener,
    SessionResolver,
    match_session,
    watch,
)

__all__ = [
    "DiscoveryChannel",
    "ServiceHandle",
    "ServiceRecord",
    "SessionListener",
    "SessionResolver",
    "match_session",
    "publish",
    "session_service_name",
    "watch",
]
