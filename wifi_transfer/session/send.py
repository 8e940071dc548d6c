from collections.abc import (
    Callable,
)
from dataclasses import (
    dataclass,
)
import logging
import os

from wifi_transfer.config import (
    DEFAULT_SESSION_ID_LENGTH,
    MAX_SESSION_ID_ATTEMPTS,
)
from wifi_transfer.discovery.exceptions import (
    AdvertiseError,
    SessionIdCollisionError,
)
from wifi_transfer.discovery.mdns.advertiser import (
    ServiceHandle,
)
from wifi_transfer.discovery.mdns.channel import (
    DiscoveryChannel,
)
from wifi_transfer.lifecycle import (
    LifecycleGuard,
)
from wifi_transfer.session.id import (
    generate_session_id,
)
from wifi_transfer.transfer.protocol import (
    TransferSession,
)
from wifi_transfer.transfer.server import (
    TransferServer,
)

logger = logging.getLogger("wifi_transfer.session.send")


@dataclass(frozen=True)
class SendInfo:
    """What the operator needs to relay once the session is advertised."""

    session_id: str
    port: int
    addresses: tuple[str, ...]
    file_name: str


@dataclass(frozen=True)
class SendResult:
    session_id: str
    session: TransferSession
    bytes_sent: int


async def advertise_session(
    channel: DiscoveryChannel,
    port: int,
    id_length: int = DEFAULT_SESSION_ID_LENGTH,
    attempts: int = MAX_SESSION_ID_ATTEMPTS,
) -> ServiceHandle:
    """
    Publish a fresh session id, picking another one if the name is taken.

    :raise AdvertiseError: publishing failed, or every id tried collided
    """
    for _ in range(attempts):
        handle = channel.advertise(generate_session_id(id_length), port)
        try:
            return await handle.publish()
        except SessionIdCollisionError:
            logger.info(
                "Session id %s is already in use, picking another",
                handle.session_id,
            )
    raise AdvertiseError(f"No free session id found after {attempts} attempts")


async def send_file(
    path: str | os.PathLike[str],
    port: int,
    *,
    host: str = "0.0.0.0",
    on_ready: Callable[[SendInfo], None] | None = None,
    handle_signals: bool = True,
    channel_factory: Callable[[], DiscoveryChannel] = DiscoveryChannel,
    id_length: int = DEFAULT_SESSION_ID_LENGTH,
    guard: LifecycleGuard | None = None,
) -> SendResult:
    """
    Advertise ``path`` on the local network and serve it to the first taker.

    The listening socket is bound before anything is advertised, so a busy
    port never leaves a record behind. Everything acquired is released when
    this returns or raises.
    """
    source = TransferSession.for_file(path)
    guard = guard if guard is not None else LifecycleGuard()

    async def work() -> SendResult:
        server = guard.server = TransferServer(path, port, host=host)
        await server.listen()

        channel = guard.channel = channel_factory().open()
        handle = guard.advertisement = await advertise_session(
            channel, server.bound_port, id_length
        )
        logger.debug(
            "Advertised session %s for %s", handle.session_id, source.display_name
        )

        if on_ready is not None:
            on_ready(
                SendInfo(
                    session_id=handle.session_id,
                    port=server.bound_port,
                    addresses=tuple(handle.addresses),
                    file_name=source.display_name,
                )
            )

        served = await server.serve_one()
        return SendResult(handle.session_id, served, server.bytes_sent)

    return await guard.run(work, handle_signals=handle_signals)
