from collections.abc import (
    Callable,
)
from dataclasses import (
    dataclass,
)
import logging
import os

from multiaddr import (
    Multiaddr,
)
import trio

from wifi_transfer.discovery.mdns.channel import (
    DiscoveryChannel,
)
from wifi_transfer.exceptions import (
    ValidationError,
)
from wifi_transfer.lifecycle import (
    LifecycleGuard,
)
from wifi_transfer.transfer.client import (
    TransferClient,
)
from wifi_transfer.transfer.progress import (
    ProgressCallback,
)
from wifi_transfer.transfer.protocol import (
    TransferSession,
)
from wifi_transfer.utils.address import (
    tcp_multiaddr,
    validate_port,
)

logger = logging.getLogger("wifi_transfer.session.accept")


@dataclass(frozen=True)
class AcceptResult:
    session: TransferSession
    endpoint: Multiaddr
    bytes_received: int
    discovered: bool


async def direct_endpoint(host: str, port: int) -> Multiaddr:
    """
    Turn an operator-supplied sender address into a dialable multiaddr.

    IP literals are used as given; anything else is resolved as a host name.
    """
    try:
        validate_port(port)
    except ValueError as error:
        raise ValidationError(
            f"Invalid sender address {host}:{port}: {error}"
        ) from error
    try:
        return tcp_multiaddr(host, port)
    except ValueError:
        logger.debug("%s is not an IP literal, resolving it", host)
    try:
        infos = await trio.socket.getaddrinfo(
            host, port, trio.socket.AF_INET, trio.socket.SOCK_STREAM
        )
    except OSError as error:
        raise ValidationError(
            f"Cannot resolve sender address {host}: {error}"
        ) from error
    if not infos:
        raise ValidationError(f"Cannot resolve sender address {host}")
    return tcp_multiaddr(infos[0][4][0], port)


async def accept_file(
    session_id: str,
    destination: str | os.PathLike[str],
    *,
    host: str | None = None,
    port: int | None = None,
    timeout: float | None = None,
    on_progress: ProgressCallback | None = None,
    on_found: Callable[[Multiaddr], None] | None = None,
    handle_signals: bool = True,
    channel_factory: Callable[[], DiscoveryChannel] = DiscoveryChannel,
    guard: LifecycleGuard | None = None,
) -> AcceptResult:
    """
    Find the sender of ``session_id`` and download its file to ``destination``.

    With ``host`` and ``port`` the sender is dialed directly and the discovery
    channel is never opened. ``timeout`` bounds only the discovery wait.
    """
    if (host is None) != (port is None):
        raise ValidationError("host and port must be given together")
    guard = guard if guard is not None else LifecycleGuard()

    async def work() -> AcceptResult:
        if host is not None and port is not None:
            endpoint = await direct_endpoint(host, port)
            discovered = False
        else:
            channel = guard.channel = channel_factory().open()
            resolver = guard.resolver = channel.resolver()
            record = await resolver.resolve(session_id, timeout=timeout)
            endpoint = record.to_multiaddr()
            discovered = True
        logger.debug("Sender for session %s is at %s", session_id, endpoint)

        if on_found is not None:
            on_found(endpoint)

        client = guard.client = TransferClient(endpoint)
        session = await client.download(destination, on_progress)
        received = client.progress.bytes_transferred if client.progress else 0
        return AcceptResult(session, endpoint, received, discovered)

    return await guard.run(work, handle_signals=handle_signals)
