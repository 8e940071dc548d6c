import pytest
import trio
from trio.testing import (
    memory_stream_pair,
)

from wifi_transfer.transfer.exceptions import (
    ProtocolError,
    SourceFileError,
    UnexpectedStatusError,
)
from wifi_transfer.transfer.protocol import (
    TransferSession,
    build_error_head,
    build_request_head,
    build_response_head,
    guess_content_type,
    parse_response_head,
    read_head,
)


def test_session_for_file(payload_file):
    session = TransferSession.for_file(payload_file)

    assert session.path == payload_file
    assert session.size_bytes == payload_file.stat().st_size
    assert session.content_type == "application/pdf"
    assert session.display_name == "report.pdf"


def test_session_for_missing_file(tmp_path):
    with pytest.raises(SourceFileError):
        TransferSession.for_file(tmp_path / "nope.bin")


def test_session_for_directory(tmp_path):
    with pytest.raises(SourceFileError):
        TransferSession.for_file(tmp_path)


def test_unknown_extension_is_octet_stream():
    assert guess_content_type("blob.zzzunknown") == "application/octet-stream"


def test_request_head_brackets_ipv6_hosts():
    assert b"Host: 10.0.0.2:5050\r\n" in build_request_head("10.0.0.2", 5050)
    assert b"Host: [fe80::1]:5050\r\n" in build_request_head("fe80::1", 5050)
    assert build_request_head("10.0.0.2", 5050).startswith(b"GET / HTTP/1.1\r\n")


def test_response_head_carries_metadata(tmp_path):
    path = tmp_path / "notes été.txt"
    path.write_text("hello")
    session = TransferSession.for_file(path)

    head, _, rest = build_response_head(session).partition(b"\r\n\r\n")
    parsed = parse_response_head(head)

    assert rest == b""
    assert parsed.status == 200
    assert parsed.header("content-length") == "5"
    assert parsed.header("Content-Type") == "text/plain"
    # Non-ASCII names travel percent-encoded and come back intact
    assert parsed.to_session().display_name == "notes été.txt"


def test_to_session_without_length_or_name(tmp_path):
    parsed = parse_response_head(b"HTTP/1.1 200 OK\r\nContent-Type: image/png")
    session = parsed.to_session(tmp_path / "out.png")

    assert session.size_bytes is None
    assert session.content_type == "image/png"
    assert session.display_name == "out.png"


@pytest.mark.parametrize("length", ["abc", "-1"])
def test_to_session_rejects_bad_length(length):
    head = f"HTTP/1.1 200 OK\r\nContent-Length: {length}".encode()
    parsed = parse_response_head(head)
    with pytest.raises(ProtocolError):
        parsed.to_session()


def test_error_status_raises():
    head = build_error_head(500, "Internal Server Error").rstrip(b"\r\n")
    with pytest.raises(UnexpectedStatusError) as excinfo:
        parse_response_head(head)
    assert excinfo.value.status == 500


@pytest.mark.parametrize(
    "head",
    [
        b"garbage",
        b"HTTP/1.1 abc OK",
        b"HTTP/1.1 200 OK\r\nno-colon-here",
    ],
)
def test_malformed_heads(head):
    with pytest.raises(ProtocolError):
        parse_response_head(head)


@pytest.mark.trio
async def test_read_head_returns_leftover_payload():
    sender, receiver = memory_stream_pair()
    await sender.send_all(b"HTTP/1.1 200 OK\r\nContent-Length: 4\r\n\r\nda")
    await sender.send_all(b"ta")

    head, leftover = await read_head(receiver)

    assert head == b"HTTP/1.1 200 OK\r\nContent-Length: 4"
    assert leftover in (b"da", b"data")


@pytest.mark.trio
async def test_read_head_handles_split_terminator():
    sender, receiver = memory_stream_pair()

    async with trio.open_nursery() as nursery:

        async def feed():
            for piece in (b"GET / HTTP/1.1\r\n", b"\r", b"\n\r", b"\n"):
                await sender.send_all(piece)
                await trio.sleep(0)

        nursery.start_soon(feed)
        head, leftover = await read_head(receiver)

    assert head == b"GET / HTTP/1.1"
    assert leftover == b""


@pytest.mark.trio
async def test_read_head_stream_ends_early():
    sender, receiver = memory_stream_pair()
    await sender.send_all(b"HTTP/1.1 200 OK\r\n")
    await sender.aclose()

    with pytest.raises(ProtocolError):
        await read_head(receiver)


@pytest.mark.trio
async def test_read_head_size_limit():
    sender, receiver = memory_stream_pair()
    await sender.send_all(b"X" * 64)

    with pytest.raises(ProtocolError):
        await read_head(receiver, max_size=32)
