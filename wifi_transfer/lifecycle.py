"""
Cleanup of everything a send or accept invocation acquires.

A ``LifecycleGuard`` holds explicit handles to the advertisement, the
transfer sockets and the discovery channel. However the guarded work ends
(success, error or a termination signal) the guard tears them down in a fixed
order, and each step is a no-op when its resource was never acquired or is
already gone.
"""

from collections.abc import (
    Awaitable,
    Callable,
    Sequence,
)
import logging
import signal
from typing import (
    TypeVar,
)

import trio
from trio_typing import (
    TaskStatus,
)

from wifi_transfer.discovery.mdns.advertiser import (
    ServiceHandle,
)
from wifi_transfer.discovery.mdns.channel import (
    DiscoveryChannel,
)
from wifi_transfer.discovery.mdns.resolver import (
    SessionResolver,
)
from wifi_transfer.exceptions import (
    InterruptedTransferError,
)
from wifi_transfer.transfer.client import (
    TransferClient,
)
from wifi_transfer.transfer.server import (
    TransferServer,
)

logger = logging.getLogger("wifi_transfer.lifecycle")

T = TypeVar("T")

TERMINATION_SIGNALS = (signal.SIGINT, signal.SIGTERM)


class LifecycleGuard:
    advertisement: ServiceHandle | None
    server: TransferServer | None
    client: TransferClient | None
    resolver: SessionResolver | None
    channel: DiscoveryChannel | None

    def __init__(self, signals: Sequence[int] = TERMINATION_SIGNALS) -> None:
        self.signals = tuple(signals)
        self.advertisement = None
        self.server = None
        self.client = None
        self.resolver = None
        self.channel = None
        self.interrupted_by: int | None = None
        self.late_signals: list[int] = []
        self.torn_down = False
        self._cancel_scope: trio.CancelScope | None = None

    async def run(
        self, work: Callable[[], Awaitable[T]], handle_signals: bool = True
    ) -> T:
        """
        Run ``work`` under the guard and tear down afterwards.

        Termination signals are received for the whole call, teardown
        included. One that arrives while teardown is running is recorded in
        ``late_signals`` and does not interrupt it.

        :raise InterruptedTransferError: a termination signal arrived first
        """
        result: T | None = None
        error: Exception | None = None
        scope = self._cancel_scope = trio.CancelScope()

        async with trio.open_nursery() as nursery:
            if handle_signals:
                await nursery.start(self._watch_signals)
            try:
                with scope:
                    try:
                        result = await work()
                    except Exception as exc:
                        error = exc
            finally:
                self._cancel_scope = None
                with trio.CancelScope(shield=True):
                    await self.teardown()
                # Stops the signal watcher
                nursery.cancel_scope.cancel()

        if self.interrupted_by is not None:
            raise InterruptedTransferError(self.interrupted_by) from error
        if error is not None:
            raise error
        return result  # type: ignore[return-value]

    async def _watch_signals(
        self, task_status: TaskStatus[None] = trio.TASK_STATUS_IGNORED
    ) -> None:
        with trio.open_signal_receiver(*self.signals) as receiver:
            task_status.started()
            async for signum in receiver:
                self.interrupt(signum)

    def interrupt(self, signum: int) -> None:
        """Abandon the guarded work as if ``signum`` had been received."""
        if self.torn_down:
            self.late_signals.append(signum)
            logger.info("Received signal %s during teardown, ignoring it", signum)
            return
        if self.interrupted_by is None:
            self.interrupted_by = signum
            logger.info("Received signal %s, shutting down", signum)
        if self._cancel_scope is not None:
            self._cancel_scope.cancel()

    async def teardown(self) -> None:
        """
        Retract the advertisement, close sockets, release discovery.

        Runs its steps once; later calls return immediately. A failing step is
        logged and does not stop the ones after it.
        """
        if self.torn_down:
            return
        self.torn_down = True
        steps = (
            ("retract advertisement", self._retract_advertisement),
            ("close sockets", self._close_sockets),
            ("release discovery", self._release_discovery),
        )
        for name, step in steps:
            try:
                await step()
            except Exception as e:
                logger.warning("Teardown step %r failed: %r", name, e)
        logger.debug("Teardown complete")

    async def _retract_advertisement(self) -> None:
        if self.advertisement is not None:
            await self.advertisement.retract()

    async def _close_sockets(self) -> None:
        if self.server is not None:
            await self.server.close()
        if self.client is not None:
            await self.client.close()

    async def _release_discovery(self) -> None:
        if self.resolver is not None:
            self.resolver.cancel()
            await self.resolver.close()
        if self.channel is not None:
            await self.channel.close()
