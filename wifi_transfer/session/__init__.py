from .accept import (
    AcceptResult,
    accept_file,
)
from .id import (
    generate_session_id,
)
from .send import (
    SendInfo,
    SendResult,
    send_file,
)

__all__ = [
    "AcceptResult",
    "SendInfo",
    "SendResult",
    "accept_file",
    "generate_session_id",
    "send_file",
]
