from collections.abc import (
    AsyncIterable,
    Callable,
)
import logging
import math

import trio
from zeroconf import (
    ServiceBrowser,
    ServiceListener,
    Zeroconf,
)

from wifi_transfer.config import (
    SERVICE_INFO_TIMEOUT_MS,
    SERVICE_TYPE,
)
from wifi_transfer.discovery.exceptions import (
    DiscoveryClosedError,
    InvalidServiceRecordError,
    ResolveCancelledError,
    ResolveTimeoutError,
)
from wifi_transfer.discovery.mdns.record import (
    ServiceRecord,
    instance_name,
    session_service_name,
)

logger = logging.getLogger("wifi_transfer.discovery.mdns.resolver")

RecordPredicate = Callable[[ServiceRecord], bool]


def match_session(session_id: str) -> RecordPredicate:
    """Predicate accepting only the record advertised for ``session_id``."""
    expected = session_service_name(session_id)

    def predicate(record: ServiceRecord) -> bool:
        return record.name == expected

    return predicate


async def watch(
    records: AsyncIterable[ServiceRecord], predicate: RecordPredicate
) -> ServiceRecord:
    """
    Return the first record from ``records`` that satisfies ``predicate``.

    Unrelated records are ignored. A matching record without an address or
    port is skipped and the search continues.

    :raise DiscoveryClosedError: the stream ended without a usable match
    """
    async for record in records:
        if not predicate(record):
            logger.debug("Ignoring service %r", record.name)
            continue
        try:
            return record.validate()
        except InvalidServiceRecordError as error:
            logger.debug("Skipping unusable match: %s", error)
    raise DiscoveryClosedError("Discovery stream ended before the session was found")


class SessionListener(ServiceListener):
    """
    Zeroconf browser callbacks that turn seen services into ServiceRecords.

    Callbacks run on the browser's thread; ``on_record`` must be safe to call
    from there.
    """

    def __init__(
        self,
        zeroconf: Zeroconf,
        service_type: str,
        on_record: Callable[[ServiceRecord], None],
        wanted: Callable[[str], bool] | None = None,
        browser_factory: Callable[..., ServiceBrowser] = ServiceBrowser,
    ) -> None:
        self.zeroconf = zeroconf
        self.service_type = service_type
        self.on_record = on_record
        self.wanted = wanted
        self.browser: ServiceBrowser | None = browser_factory(
            self.zeroconf, self.service_type, listener=self
        )

    def add_service(self, zc: Zeroconf, type_: str, name: str) -> None:
        logger.debug(f"Service seen: {name}")
        self._emit(zc, type_, name)

    def update_service(self, zc: Zeroconf, type_: str, name: str) -> None:
        self._emit(zc, type_, name)

    def remove_service(self, zc: Zeroconf, type_: str, name: str) -> None:
        logger.debug(f"Service gone: {name}")

    def _emit(self, zc: Zeroconf, type_: str, name: str) -> None:
        # Skip the network round trip for services nobody is waiting for
        if self.wanted is not None and not self.wanted(instance_name(name, type_)):
            return
        try:
            info = zc.get_service_info(type_, name, timeout=SERVICE_INFO_TIMEOUT_MS)
        except Exception as e:
            logger.debug("Could not resolve service %r: %r", name, e)
            return
        if not info:
            logger.debug("Service %r did not answer in time", name)
            return
        self.on_record(ServiceRecord.from_service_info(info))

    def stop(self) -> None:
        browser, self.browser = self.browser, None
        if browser is not None:
            browser.cancel()


class SessionResolver:
    """
    Finds the sender advertising a given session id.

    ``resolve`` waits for the matching record, optionally bounded by a
    timeout; ``cancel`` aborts a pending or future ``resolve`` from any task.
    """

    def __init__(
        self,
        zeroconf: Zeroconf,
        service_type: str = SERVICE_TYPE,
        listener_factory: Callable[..., SessionListener] = SessionListener,
    ) -> None:
        self.zeroconf = zeroconf
        self.service_type = service_type
        self.listener_factory = listener_factory
        self._listener: SessionListener | None = None
        self._cancel_scope: trio.CancelScope | None = None
        self._cancelled = False

    async def resolve(
        self, session_id: str, timeout: float | None = None
    ) -> ServiceRecord:
        """
        Wait until the record for ``session_id`` shows up on the network.

        :raise ResolveTimeoutError: nothing matched within ``timeout`` seconds
        :raise ResolveCancelledError: :meth:`cancel` was called
        """
        if self._cancelled:
            raise ResolveCancelledError(f"Resolution of {session_id!r} was cancelled")

        predicate = match_session(session_id)
        expected = session_service_name(session_id)
        send_channel, receive_channel = trio.open_memory_channel[ServiceRecord](
            math.inf
        )
        token = trio.lowlevel.current_trio_token()

        def deliver(record: ServiceRecord) -> None:
            try:
                send_channel.send_nowait(record)
            except (trio.ClosedResourceError, trio.BrokenResourceError):
                pass

        def on_record(record: ServiceRecord) -> None:
            try:
                token.run_sync_soon(deliver, record)
            except trio.RunFinishedError:
                pass

        self._cancel_scope = trio.CancelScope()
        if timeout is not None:
            self._cancel_scope.deadline = trio.current_time() + timeout

        try:
            with self._cancel_scope:
                self._listener = self.listener_factory(
                    self.zeroconf,
                    self.service_type,
                    on_record,
                    wanted=lambda name: name == expected,
                )
                async with receive_channel:
                    record = await watch(receive_channel, predicate)
                logger.debug(
                    "Resolved session %s at %s:%s",
                    session_id,
                    record.primary_address,
                    record.port,
                )
                return record
        finally:
            send_channel.close()
            with trio.CancelScope(shield=True):
                await self.close()

        if self._cancelled:
            raise ResolveCancelledError(f"Resolution of {session_id!r} was cancelled")
        raise ResolveTimeoutError(
            f"No sender advertised session {session_id!r} within {timeout} seconds"
        )

    def cancel(self) -> None:
        self._cancelled = True
        if self._cancel_scope is not None:
            self._cancel_scope.cancel()

    async def close(self) -> None:
        """Stop browsing. Safe to call repeatedly."""
        listener, self._listener = self._listener, None
        if listener is not None:
            # ServiceBrowser.cancel joins the browser thread
            await trio.to_thread.run_sync(listener.stop)
