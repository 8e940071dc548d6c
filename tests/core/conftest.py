import pytest
import trio
from zeroconf import (
    NonUniqueNameException,
)

from wifi_transfer.discovery.exceptions import (
    SessionIdCollisionError,
)
from wifi_transfer.discovery.mdns.record import (
    ServiceRecord,
    session_service_name,
)


class FakeZeroconf:
    """Stands in for zeroconf.Zeroconf where no multicast network is needed."""

    def __init__(self, taken_names=(), fail_with=None):
        self.taken_names = set(taken_names)
        self.fail_with = fail_with
        self.registered = []
        self.unregistered = []
        self.closed = False

    def register_service(self, info):
        if self.fail_with is not None:
            raise self.fail_with
        if info.name in self.taken_names:
            raise NonUniqueNameException
        self.registered.append(info)

    def unregister_service(self, info):
        if self.closed:
            raise RuntimeError("zeroconf already closed")
        self.unregistered.append(info)

    def close(self):
        self.closed = True


class FakeNetwork:
    """In-memory discovery channel shared by a fake sender and receiver."""

    def __init__(self, taken_ids=()):
        self.taken_ids = set(taken_ids)
        self.records: dict[str, ServiceRecord] = {}
        self.changed = trio.Event()
        self.channels = []
        self.published = []
        self.retracted = []

    def channel_factory(self):
        channel = FakeChannel(self)
        self.channels.append(channel)
        return channel

    def announce(self, record):
        self.records[record.name] = record
        self.changed.set()
        self.changed = trio.Event()


class FakeHandle:
    def __init__(self, network, session_id, port):
        self.network = network
        self.session_id = session_id
        self.port = port
        self.addresses = ["127.0.0.1"]
        self.retract_calls = 0

    async def publish(self):
        if self.session_id in self.network.taken_ids:
            raise SessionIdCollisionError(self.session_id)
        self.network.published.append(self.session_id)
        self.network.announce(
            ServiceRecord(
                name=session_service_name(self.session_id),
                port=self.port,
                addresses=tuple(self.addresses),
            )
        )
        return self

    async def retract(self):
        self.retract_calls += 1
        if self.retract_calls == 1:
            self.network.retracted.append(self.session_id)
            self.network.records.pop(session_service_name(self.session_id), None)


class FakeResolver:
    def __init__(self, network):
        self.network = network
        self.cancelled = False
        self.closed = 0

    async def resolve(self, session_id, timeout=None):
        name = session_service_name(session_id)
        while name not in self.network.records:
            await self.network.changed.wait()
        return self.network.records[name].validate()

    def cancel(self):
        self.cancelled = True

    async def close(self):
        self.closed += 1


class FakeChannel:
    def __init__(self, network):
        self.network = network
        self.opened = False
        self.close_calls = 0
        self.handles = []

    def open(self):
        self.opened = True
        return self

    def advertise(self, session_id, port):
        handle = FakeHandle(self.network, session_id, port)
        self.handles.append(handle)
        return handle

    def resolver(self):
        return FakeResolver(self.network)

    async def close(self):
        self.close_calls += 1


@pytest.fixture
def fake_zeroconf():
    return FakeZeroconf()


@pytest.fixture
def fake_network():
    return FakeNetwork()


@pytest.fixture
def payload_file(tmp_path):
    path = tmp_path / "report.pdf"
    # Larger than one chunk so the stream spans several reads
    path.write_bytes(bytes(range(256)) * 1024 + b"tail")
    return path


@pytest.fixture
def zeroconf_factory():
    return FakeZeroconf


@pytest.fixture
def network_factory():
    return FakeNetwork
