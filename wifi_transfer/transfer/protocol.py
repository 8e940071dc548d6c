"""
Wire format of a transfer: one HTTP/1.1 request and response over TCP.

The receiver sends a plain ``GET /``. The sender answers ``200 OK`` with
``Content-Type``, ``Content-Length`` and ``X-File-Name`` headers, followed by
the raw file bytes and end of stream. Any HTTP client can therefore fetch a
session too.
"""

from dataclasses import (
    dataclass,
    field,
)
import mimetypes
import os
from pathlib import (
    Path,
)
from urllib.parse import (
    quote,
    unquote,
)

import trio

from wifi_transfer.config import (
    DEFAULT_CONTENT_TYPE,
    FILE_NAME_HEADER,
    MAX_HEAD_SIZE,
)
from wifi_transfer.transfer.exceptions import (
    ProtocolError,
    SourceFileError,
    TransferIOError,
    UnexpectedStatusError,
)

HEAD_TERMINATOR = b"\r\n\r\n"
HTTP_VERSION = "HTTP/1.1"


def guess_content_type(path: str | os.PathLike[str]) -> str:
    content_type, _ = mimetypes.guess_type(os.fspath(path))
    return content_type or DEFAULT_CONTENT_TYPE


@dataclass(frozen=True)
class TransferSession:
    """
    The file a transfer is about.

    On the sending side ``path`` is the source and ``size_bytes`` comes from
    the filesystem; on the receiving side ``path`` is the destination and
    ``size_bytes`` is whatever the sender declared, if anything.
    """

    path: Path | None
    size_bytes: int | None
    content_type: str
    display_name: str

    @classmethod
    def for_file(cls, path: str | os.PathLike[str]) -> "TransferSession":
        source = Path(path)
        try:
            size = source.stat().st_size
        except OSError as error:
            raise SourceFileError(f"Cannot stat {source}: {error}") from error
        if not source.is_file():
            raise SourceFileError(f"{source} is not a regular file")
        return cls(
            path=source,
            size_bytes=size,
            content_type=guess_content_type(source),
            display_name=source.name,
        )


@dataclass
class ResponseHead:
    status: int
    reason: str
    headers: dict[str, str] = field(default_factory=dict)

    def header(self, name: str) -> str | None:
        return self.headers.get(name.lower())

    def to_session(self, destination: Path | None = None) -> TransferSession:
        """
        Interpret the metadata headers.

        :raise ProtocolError: Content-Length is present but not a byte count
        """
        length = self.header("Content-Length")
        size: int | None = None
        if length is not None:
            try:
                size = int(length)
            except ValueError:
                raise ProtocolError(f"Invalid Content-Length {length!r}") from None
            if size < 0:
                raise ProtocolError(f"Invalid Content-Length {length!r}")

        raw_name = self.header(FILE_NAME_HEADER)
        display_name = unquote(raw_name) if raw_name else ""
        if not display_name and destination is not None:
            display_name = destination.name

        return TransferSession(
            path=destination,
            size_bytes=size,
            content_type=self.header("Content-Type") or DEFAULT_CONTENT_TYPE,
            display_name=display_name,
        )


def build_request_head(host: str, port: int) -> bytes:
    host_header = f"[{host}]" if ":" in host else host
    lines = [
        f"GET / {HTTP_VERSION}",
        f"Host: {host_header}:{port}",
        "Accept: */*",
        "Connection: close",
    ]
    return ("\r\n".join(lines) + "\r\n\r\n").encode("ascii")


def build_response_head(session: TransferSession) -> bytes:
    lines = [
        f"{HTTP_VERSION} 200 OK",
        f"Content-Type: {session.content_type}",
        f"Content-Length: {session.size_bytes}",
        # Non-ASCII names cannot go into a header verbatim
        f"{FILE_NAME_HEADER}: {quote(session.display_name)}",
        "Connection: close",
    ]
    return ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1")


def build_error_head(status: int, reason: str) -> bytes:
    lines = [
        f"{HTTP_VERSION} {status} {reason}",
        "Content-Length: 0",
        "Connection: close",
    ]
    return ("\r\n".join(lines) + "\r\n\r\n").encode("latin-1")


async def read_head(
    stream: trio.abc.ReceiveStream, max_size: int = MAX_HEAD_SIZE
) -> tuple[bytes, bytes]:
    """
    Read an HTTP head off ``stream``.

    :return: the head without its blank-line terminator, and whatever payload
        bytes arrived in the same reads
    :raise ProtocolError: the stream ended first, or the head is too large
    :raise TransferIOError: the connection broke
    """
    buffer = bytearray()
    while True:
        end = buffer.find(HEAD_TERMINATOR)
        if end != -1:
            return bytes(buffer[:end]), bytes(buffer[end + len(HEAD_TERMINATOR) :])
        if len(buffer) > max_size:
            raise ProtocolError(f"Head exceeds {max_size} bytes")
        try:
            data = await stream.receive_some()
        except (trio.BrokenResourceError, trio.ClosedResourceError) as error:
            raise TransferIOError(
                f"Connection lost while reading head: {error}"
            ) from error
        if not data:
            raise ProtocolError("Connection closed before the head was complete")
        buffer.extend(data)


def parse_response_head(head: bytes) -> ResponseHead:
    """
    Parse a response head.

    :raise ProtocolError: the status line or a header line is malformed
    :raise UnexpectedStatusError: the status is not 200
    """
    lines = head.decode("latin-1").split("\r\n")
    parts = lines[0].split(" ", 2)
    if len(parts) < 2 or not parts[0].startswith("HTTP/"):
        raise ProtocolError(f"Malformed status line {lines[0]!r}")
    try:
        status = int(parts[1])
    except ValueError:
        raise ProtocolError(f"Malformed status code {parts[1]!r}") from None
    reason = parts[2] if len(parts) > 2 else ""

    headers: dict[str, str] = {}
    for line in lines[1:]:
        if not line:
            continue
        name, sep, value = line.partition(":")
        if not sep or not name.strip():
            raise ProtocolError(f"Malformed header line {line!r}")
        headers[name.strip().lower()] = value.strip()

    if status != 200:
        raise UnexpectedStatusError(status, reason)
    return ResponseHead(status=status, reason=reason, headers=headers)
