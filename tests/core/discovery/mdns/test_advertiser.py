import pytest
import trio

from wifi_transfer.config import (
    NAME_PREFIX,
    SERVICE_TYPE,
)
from wifi_transfer.discovery.exceptions import (
    AdvertiseError,
    SessionIdCollisionError,
)
from wifi_transfer.discovery.mdns.advertiser import (
    ServiceHandle,
    publish,
)


def test_service_info_creation(fake_zeroconf):
    handle = ServiceHandle(fake_zeroconf, "a1B2c", 5050, addresses=["192.168.1.7"])

    info = handle.service_info
    assert info.type == SERVICE_TYPE
    assert info.name == f"{NAME_PREFIX}a1B2c.{SERVICE_TYPE}"
    assert info.port == 5050
    assert info.properties[b"id"] == b"a1B2c"
    assert info.parsed_addresses() == ["192.168.1.7"]
    assert not handle.published


def test_rejects_invalid_port(fake_zeroconf):
    with pytest.raises(ValueError):
        ServiceHandle(fake_zeroconf, "a1B2c", 0, addresses=["192.168.1.7"])


@pytest.mark.trio
async def test_publish_registers_once(fake_zeroconf):
    handle = await publish(fake_zeroconf, "a1B2c", 5050, addresses=["192.168.1.7"])

    assert handle.published
    await handle.publish()
    assert fake_zeroconf.registered == [handle.service_info]


@pytest.mark.trio
async def test_retract_is_idempotent(fake_zeroconf):
    handle = ServiceHandle(fake_zeroconf, "a1B2c", 5050, addresses=["192.168.1.7"])
    await handle.publish()

    await handle.retract()
    await handle.retract()

    assert fake_zeroconf.unregistered == [handle.service_info]
    assert not handle.published


@pytest.mark.trio
async def test_retract_before_publish_is_noop(fake_zeroconf):
    handle = ServiceHandle(fake_zeroconf, "a1B2c", 5050, addresses=["192.168.1.7"])
    await handle.retract()
    assert fake_zeroconf.unregistered == []


@pytest.mark.trio
async def test_retract_after_channel_closed_does_not_raise(fake_zeroconf):
    handle = await publish(fake_zeroconf, "a1B2c", 5050, addresses=["192.168.1.7"])
    fake_zeroconf.close()

    await handle.retract()
    await handle.retract()


@pytest.mark.trio
async def test_name_conflict_raises_collision(zeroconf_factory):
    zeroconf = zeroconf_factory(taken_names={f"{NAME_PREFIX}taken.{SERVICE_TYPE}"})
    with pytest.raises(SessionIdCollisionError):
        await publish(zeroconf, "taken", 5050, addresses=["192.168.1.7"])


@pytest.mark.trio
async def test_bind_failure_raises_advertise_error(zeroconf_factory):
    zeroconf = zeroconf_factory(fail_with=OSError("no usable interface"))
    handle = ServiceHandle(zeroconf, "a1B2c", 5050, addresses=["192.168.1.7"])
    with pytest.raises(AdvertiseError):
        await handle.publish()
    assert not handle.published
    # Nothing was published, so there is nothing to take back
    with trio.fail_after(1):
        await handle.retract()
