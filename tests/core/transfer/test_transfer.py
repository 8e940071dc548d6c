import pytest
import trio

from wifi_transfer.transfer.client import (
    ClientState,
    TransferClient,
)
from wifi_transfer.transfer.exceptions import (
    IncompleteTransferError,
    ListenError,
    OpenConnectionError,
    SourceFileError,
    TransferError,
    UnexpectedStatusError,
)
from wifi_transfer.transfer.protocol import (
    build_request_head,
    read_head,
)
from wifi_transfer.transfer.server import (
    ServerState,
    TransferServer,
)
from wifi_transfer.utils.address import (
    tcp_multiaddr,
)

LOOPBACK = "127.0.0.1"


async def _listening_server(path):
    server = TransferServer(path, 0, host=LOOPBACK)
    await server.listen()
    return server


async def _wait_for_state(server, state):
    with trio.fail_after(5):
        while server.state is not state:
            await trio.sleep(0.01)


async def _raw_sender(head, body, task_status=trio.TASK_STATUS_IGNORED):
    """Answers a single request with a hand-written response."""
    listeners = await trio.open_tcp_listeners(0, host=LOOPBACK)
    task_status.started(listeners[0].socket.getsockname()[1])
    stream = await listeners[0].accept()
    async with stream:
        await listeners[0].aclose()
        await read_head(stream)
        await stream.send_all(head + body)


@pytest.mark.trio
async def test_loopback_round_trip(payload_file, tmp_path):
    server = await _listening_server(payload_file)
    destination = tmp_path / "received.pdf"
    states = []
    sent = {}

    async def serve():
        sent["session"] = await server.serve_one()

    async with trio.open_nursery() as nursery:
        nursery.start_soon(serve)
        client = TransferClient(tcp_multiaddr(LOOPBACK, server.bound_port))
        session = await client.download(destination, on_progress=states.append)

    assert destination.read_bytes() == payload_file.read_bytes()
    assert session.size_bytes == payload_file.stat().st_size
    assert session.display_name == "report.pdf"
    assert session.content_type == "application/pdf"
    assert sent["session"].size_bytes == session.size_bytes
    assert server.bytes_sent == session.size_bytes
    assert server.state is ServerState.CLOSED
    assert client.state is ClientState.DONE

    transferred = [state.bytes_transferred for state in states]
    assert transferred == sorted(transferred)
    assert transferred[-1] == session.size_bytes
    assert states[-1].percent == 100.0


@pytest.mark.trio
async def test_empty_file(tmp_path):
    source = tmp_path / "empty.txt"
    source.write_bytes(b"")
    server = await _listening_server(source)

    async with trio.open_nursery() as nursery:
        nursery.start_soon(server.serve_one)
        client = TransferClient(tcp_multiaddr(LOOPBACK, server.bound_port))
        session = await client.download(tmp_path / "out.txt")

    assert session.size_bytes == 0
    assert (tmp_path / "out.txt").read_bytes() == b""


@pytest.mark.trio
async def test_second_connection_is_refused(payload_file):
    server = await _listening_server(payload_file)
    port = server.bound_port

    async with trio.open_nursery() as nursery:
        nursery.start_soon(server.serve_one)
        first = await trio.open_tcp_stream(LOOPBACK, port)
        await _wait_for_state(server, ServerState.STREAMING)

        with pytest.raises(OSError):
            await trio.open_tcp_stream(LOOPBACK, port)

        async with first:
            await first.send_all(build_request_head(LOOPBACK, port))
            while await first.receive_some():
                pass

    assert server.state is ServerState.CLOSED


@pytest.mark.trio
async def test_missing_source_answers_500(tmp_path):
    source = tmp_path / "gone.bin"
    source.write_bytes(b"soon deleted")
    server = await _listening_server(source)
    source.unlink()

    async def serve():
        with pytest.raises(SourceFileError):
            await server.serve_one()

    async with trio.open_nursery() as nursery:
        nursery.start_soon(serve)
        client = TransferClient(tcp_multiaddr(LOOPBACK, server.bound_port))
        with pytest.raises(UnexpectedStatusError) as excinfo:
            await client.download(tmp_path / "out.bin")

    assert excinfo.value.status == 500
    assert client.state is ClientState.FAILED
    assert server.state is ServerState.CLOSED


@pytest.mark.trio
async def test_short_stream_is_incomplete(tmp_path):
    destination = tmp_path / "partial.bin"
    head = b"HTTP/1.1 200 OK\r\nContent-Length: 100\r\n\r\n"

    async with trio.open_nursery() as nursery:
        port = await nursery.start(_raw_sender, head, b"0123456789")
        client = TransferClient(tcp_multiaddr(LOOPBACK, port))
        with pytest.raises(IncompleteTransferError) as excinfo:
            await client.download(destination)

    assert excinfo.value.received == 10
    assert excinfo.value.expected == 100
    # Partial output is left in place
    assert destination.read_bytes() == b"0123456789"


@pytest.mark.trio
async def test_unknown_length_reads_to_end_of_stream(tmp_path):
    destination = tmp_path / "stream.bin"
    body = b"x" * 200_000
    states = []

    async with trio.open_nursery() as nursery:
        port = await nursery.start(_raw_sender, b"HTTP/1.1 200 OK\r\n\r\n", body)
        client = TransferClient(tcp_multiaddr(LOOPBACK, port))
        session = await client.download(destination, on_progress=states.append)

    assert session.size_bytes is None
    assert session.display_name == "stream.bin"
    assert destination.read_bytes() == body
    assert all(state.percent is None for state in states)


@pytest.mark.trio
async def test_trailing_bytes_past_length_are_dropped(tmp_path):
    destination = tmp_path / "exact.bin"
    head = b"HTTP/1.1 200 OK\r\nContent-Length: 4\r\n\r\n"

    async with trio.open_nursery() as nursery:
        port = await nursery.start(_raw_sender, head, b"dataEXTRA")
        client = TransferClient(tcp_multiaddr(LOOPBACK, port))
        await client.download(destination)

    assert destination.read_bytes() == b"data"


@pytest.mark.trio
async def test_busy_port_fails_to_listen(payload_file):
    first = await _listening_server(payload_file)
    try:
        second = TransferServer(payload_file, first.bound_port, host=LOOPBACK)
        with pytest.raises(ListenError):
            await second.listen()
    finally:
        await first.close()


@pytest.mark.trio
async def test_connect_refused(tmp_path):
    listeners = await trio.open_tcp_listeners(0, host=LOOPBACK)
    port = listeners[0].socket.getsockname()[1]
    await listeners[0].aclose()

    client = TransferClient(tcp_multiaddr(LOOPBACK, port))
    with pytest.raises(OpenConnectionError):
        await client.download(tmp_path / "never.bin")
    assert client.state is ClientState.FAILED
    assert not (tmp_path / "never.bin").exists()


@pytest.mark.trio
async def test_server_serves_only_once(payload_file):
    server = await _listening_server(payload_file)
    await server.close()
    await server.close()

    assert server.state is ServerState.CLOSED
    with pytest.raises(TransferError):
        await server.serve_one()


def test_server_rejects_out_of_range_port(payload_file):
    with pytest.raises(ValueError):
        TransferServer(payload_file, 70000)
