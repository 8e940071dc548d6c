from collections.abc import (
    Callable,
)
import enum
import logging
import os
from pathlib import (
    Path,
)
import time

from multiaddr import (
    Multiaddr,
)
import trio

from wifi_transfer.transfer.exceptions import (
    IncompleteTransferError,
    OpenConnectionError,
    TransferError,
    TransferIOError,
)
from wifi_transfer.transfer.progress import (
    ProgressCallback,
    ProgressState,
    ProgressTracker,
)
from wifi_transfer.transfer.protocol import (
    TransferSession,
    build_request_head,
    parse_response_head,
    read_head,
)
from wifi_transfer.utils.address import (
    host_port_from_multiaddr,
)

logger = logging.getLogger("wifi_transfer.transfer.client")


class ClientState(enum.Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    RECEIVING = "receiving"
    DONE = "done"
    FAILED = "failed"


class TransferClient:
    """
    Downloads the file a ``TransferServer`` offers at ``maddr``.

    Bytes land in the destination in the order they arrive. A failed transfer
    leaves whatever was already written on disk.
    """

    stream: trio.SocketStream | None

    def __init__(
        self, maddr: Multiaddr, clock: Callable[[], float] = time.monotonic
    ) -> None:
        self.maddr = maddr
        self.clock = clock
        self.state = ClientState.IDLE
        self.stream = None
        self.progress: ProgressState | None = None
        self.session: TransferSession | None = None

    async def download(
        self,
        destination: str | os.PathLike[str],
        on_progress: ProgressCallback | None = None,
    ) -> TransferSession:
        """
        Fetch the file into ``destination``.

        :param on_progress: called with a fresh ``ProgressState`` after every
            chunk written
        :raise OpenConnectionError: the sender could not be reached
        :raise ProtocolError: the sender's response was malformed or not 200
        :raise TransferIOError: the connection or the destination failed
        """
        if self.state is not ClientState.IDLE:
            raise TransferError(f"Cannot download while {self.state.value}")
        target = Path(destination)
        try:
            self.state = ClientState.CONNECTING
            host, port = self._endpoint()
            self.stream = await self._connect(host, port)
            await self._send(self.stream, build_request_head(host, port))

            head, leftover = await read_head(self.stream)
            self.session = parse_response_head(head).to_session(target)
            self.state = ClientState.RECEIVING
            logger.debug(
                "Receiving %s (%s, %s bytes)",
                self.session.display_name,
                self.session.content_type,
                self.session.size_bytes
                if self.session.size_bytes is not None
                else "unknown",
            )

            await self._receive(self.stream, target, leftover, on_progress)
            self.state = ClientState.DONE
            return self.session
        except BaseException:
            self.state = ClientState.FAILED
            raise
        finally:
            with trio.CancelScope(shield=True):
                await self.close()

    def _endpoint(self) -> tuple[str, int]:
        try:
            return host_port_from_multiaddr(self.maddr)
        except ValueError as error:
            raise OpenConnectionError(
                f"Failed to dial {self.maddr}: {error}"
            ) from error

    async def _connect(self, host: str, port: int) -> trio.SocketStream:
        try:
            stream = await trio.open_tcp_stream(host, port)
        except OSError as error:
            # OSError is common for network issues like "Connection refused"
            raise OpenConnectionError(
                f"Failed to open TCP stream to {self.maddr}: {error}"
            ) from error
        logger.debug("Connected to %s", self.maddr)
        return stream

    async def _send(self, stream: trio.SocketStream, data: bytes) -> None:
        try:
            await stream.send_all(data)
        except (trio.BrokenResourceError, trio.ClosedResourceError) as error:
            raise TransferIOError(f"Connection lost while sending: {error}") from error

    async def _read(self, stream: trio.SocketStream) -> bytes:
        try:
            return await stream.receive_some()
        except (trio.BrokenResourceError, trio.ClosedResourceError) as error:
            raise TransferIOError(
                f"Connection lost while receiving: {error}"
            ) from error

    async def _receive(
        self,
        stream: trio.SocketStream,
        target: Path,
        leftover: bytes,
        on_progress: ProgressCallback | None,
    ) -> None:
        assert self.session is not None
        expected = self.session.size_bytes
        tracker = ProgressTracker(expected, self.clock)

        try:
            sink = await trio.open_file(target, "wb")
        except OSError as error:
            raise TransferIOError(
                f"Cannot open {target} for writing: {error}"
            ) from error

        async with sink:
            pending = leftover
            while expected is None or tracker.bytes_transferred < expected:
                if pending:
                    chunk, pending = pending, b""
                else:
                    chunk = await self._read(stream)
                if not chunk:
                    break
                if expected is not None:
                    # Anything past the declared length is not part of the file
                    chunk = chunk[: expected - tracker.bytes_transferred]
                try:
                    await sink.write(chunk)
                except OSError as error:
                    raise TransferIOError(
                        f"Writing {target} failed: {error}"
                    ) from error
                self.progress = tracker.advance(len(chunk))
                if on_progress is not None:
                    on_progress(self.progress)

        if expected is not None and tracker.bytes_transferred < expected:
            raise IncompleteTransferError(tracker.bytes_transferred, expected)
        logger.debug("Received %d bytes into %s", tracker.bytes_transferred, target)

    async def close(self) -> None:
        """Release the connection. Safe to call repeatedly."""
        stream, self.stream = self.stream, None
        if stream is not None:
            await stream.aclose()
