import enum
import logging
import os
from pathlib import (
    Path,
)

from multiaddr import (
    Multiaddr,
)
import trio

from wifi_transfer.config import (
    CHUNK_SIZE,
    SEND_LINGER_TIMEOUT,
)
from wifi_transfer.transfer.exceptions import (
    ListenError,
    SourceFileError,
    TransferError,
    TransferIOError,
)
from wifi_transfer.transfer.protocol import (
    TransferSession,
    build_error_head,
    build_response_head,
    read_head,
)
from wifi_transfer.utils.address import (
    tcp_multiaddr,
    validate_port,
)

logger = logging.getLogger("wifi_transfer.transfer.server")


class ServerState(enum.Enum):
    IDLE = "idle"
    LISTENING = "listening"
    STREAMING = "streaming"
    CLOSED = "closed"


class TransferServer:
    """
    Serves one file to exactly one connection.

    The listening sockets are closed as soon as the first connection is
    accepted, so later connection attempts are refused by the OS.
    """

    listeners: list[trio.SocketListener]
    stream: trio.SocketStream | None

    def __init__(
        self,
        path: str | os.PathLike[str],
        port: int,
        host: str | None = "0.0.0.0",
    ) -> None:
        self.path = Path(path)
        # Port 0 lets the OS choose, which tests rely on
        self.port = port if port == 0 else validate_port(port)
        self.host = host
        self.state = ServerState.IDLE
        self.listeners = []
        self.stream = None
        self.bytes_sent = 0

    async def listen(self) -> None:
        """
        Bind the listening socket(s) on the configured port.

        :raise ListenError: the port is taken or cannot be bound
        """
        if self.state is not ServerState.IDLE:
            raise TransferError(f"Cannot listen while {self.state.value}")
        try:
            self.listeners = await trio.open_tcp_listeners(self.port, host=self.host)
        except OSError as error:
            raise ListenError(f"Cannot listen on port {self.port}: {error}") from error
        self.port = self.listeners[0].socket.getsockname()[1]
        self.state = ServerState.LISTENING
        logger.debug("Listening on %s", ", ".join(map(str, self.get_addrs())))

    @property
    def bound_port(self) -> int:
        if self.state is ServerState.IDLE:
            raise TransferError("Server is not listening")
        return self.port

    def get_addrs(self) -> tuple[Multiaddr, ...]:
        addrs = []
        for listener in self.listeners:
            ip, port = listener.socket.getsockname()[:2]
            addrs.append(tcp_multiaddr(ip, port))
        return tuple(addrs)

    async def serve_one(self) -> TransferSession:
        """
        Wait for the first connection and stream the file to it.

        The server is CLOSED when this returns or raises.

        :raise SourceFileError: the file could not be opened or read
        :raise TransferIOError: the connection failed mid-stream
        """
        if self.state is not ServerState.LISTENING:
            raise TransferError(f"Cannot serve while {self.state.value}")
        try:
            self.stream = await self._accept_first()
            await self._close_listeners()
            self.state = ServerState.STREAMING
            logger.debug("Accepted connection from %s", _peer_name(self.stream))

            # Whatever was requested, the answer is the one file
            await read_head(self.stream)
            session = await self._stream_file(self.stream)
            await self._linger(self.stream)
            logger.debug(
                "Sent %d bytes of %s", self.bytes_sent, session.display_name
            )
            return session
        finally:
            with trio.CancelScope(shield=True):
                await self.close()

    async def _accept_first(self) -> trio.SocketStream:
        accepted: trio.SocketStream | None = None
        failure: OSError | None = None

        async with trio.open_nursery() as nursery:

            async def accept_from(listener: trio.SocketListener) -> None:
                nonlocal accepted, failure
                try:
                    stream = await listener.accept()
                except OSError as error:
                    failure = error
                    nursery.cancel_scope.cancel()
                    return
                if accepted is None:
                    accepted = stream
                    nursery.cancel_scope.cancel()
                else:
                    await stream.aclose()

            for listener in self.listeners:
                nursery.start_soon(accept_from, listener)

        if accepted is None:
            if failure is not None:
                raise TransferIOError(f"Accept failed: {failure}") from failure
            raise TransferError("Listener closed before a connection arrived")
        return accepted

    async def _stream_file(self, stream: trio.SocketStream) -> TransferSession:
        try:
            session = TransferSession.for_file(self.path)
            source = await trio.open_file(self.path, "rb")
        except (SourceFileError, OSError) as error:
            await self._send(stream, build_error_head(500, "Internal Server Error"))
            if isinstance(error, SourceFileError):
                raise
            raise SourceFileError(f"Cannot open {self.path}: {error}") from error

        async with source:
            await self._send(stream, build_response_head(session))
            while True:
                try:
                    chunk = await source.read(CHUNK_SIZE)
                except OSError as error:
                    raise SourceFileError(
                        f"Reading {self.path} failed: {error}"
                    ) from error
                if not chunk:
                    break
                await self._send(stream, chunk)
                self.bytes_sent += len(chunk)

        if self.bytes_sent != session.size_bytes:
            raise SourceFileError(
                f"{self.path} changed size while sending: "
                f"declared {session.size_bytes}, sent {self.bytes_sent}"
            )
        return session

    async def _send(self, stream: trio.SocketStream, data: bytes) -> None:
        try:
            await stream.send_all(data)
        except (trio.BrokenResourceError, trio.ClosedResourceError) as error:
            raise TransferIOError(f"Connection lost while sending: {error}") from error

    async def _linger(self, stream: trio.SocketStream) -> None:
        """Half-close and give the receiver a moment to drain and hang up."""
        try:
            await stream.send_eof()
        except (trio.BrokenResourceError, trio.ClosedResourceError) as error:
            raise TransferIOError(
                f"Connection lost while finishing: {error}"
            ) from error
        with trio.move_on_after(SEND_LINGER_TIMEOUT):
            try:
                while await stream.receive_some():
                    pass
            except trio.BrokenResourceError:
                pass

    async def _close_listeners(self) -> None:
        listeners, self.listeners = self.listeners, []
        for listener in listeners:
            await listener.aclose()

    async def close(self) -> None:
        """Close the listening sockets and any open connection. Idempotent."""
        await self._close_listeners()
        stream, self.stream = self.stream, None
        if stream is not None:
            await stream.aclose()
        if self.state is not ServerState.CLOSED:
            logger.debug("Transfer server closed")
        self.state = ServerState.CLOSED


def _peer_name(stream: trio.SocketStream) -> str:
    try:
        host, port = stream.socket.getpeername()[:2]
    except OSError:
        return "unknown peer"
    return f"{host}:{port}"
