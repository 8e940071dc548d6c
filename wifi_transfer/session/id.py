import secrets

from wifi_transfer.config import (
    DEFAULT_SESSION_ID_LENGTH,
    SESSION_ID_ALPHABET,
)


def generate_session_id(length: int = DEFAULT_SESSION_ID_LENGTH) -> str:
    """
    Generate a short URL-safe token for an operator to relay by hand.

    Collisions are possible but unlikely among the handful of sessions a
    local network advertises at once; the advertiser reports them.
    """
    if length <= 0:
        raise ValueError(f"Session id length must be positive, got {length}")
    return "".join(secrets.choice(SESSION_ID_ALPHABET) for _ in range(length))
