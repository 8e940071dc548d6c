from collections.abc import (
    Callable,
)
from dataclasses import (
    dataclass,
)
import time


@dataclass(frozen=True)
class ProgressState:
    bytes_transferred: int
    total_bytes: int | None
    elapsed: float
    estimated_remaining: float | None

    @property
    def percent(self) -> float | None:
        """Completion in ``[0, 100]``, or None while the size is unknown."""
        if self.total_bytes is None:
            return None
        if self.total_bytes == 0:
            return 100.0
        return min(100.0, 100.0 * self.bytes_transferred / self.total_bytes)

    @property
    def rate(self) -> float | None:
        """Average throughput in bytes per second."""
        if self.elapsed <= 0:
            return None
        return self.bytes_transferred / self.elapsed


ProgressCallback = Callable[[ProgressState], None]


class ProgressTracker:
    """
    Accumulates chunk sizes into successive ``ProgressState`` snapshots.

    ``bytes_transferred`` only ever grows: every accepted chunk is non-empty.
    """

    def __init__(
        self, total_bytes: int | None, clock: Callable[[], float] = time.monotonic
    ) -> None:
        self.total_bytes = total_bytes
        self.clock = clock
        self.started_at = clock()
        self.bytes_transferred = 0

    def advance(self, n: int) -> ProgressState:
        if n <= 0:
            raise ValueError(f"Chunk size must be positive, got {n}")
        self.bytes_transferred += n
        return self.snapshot()

    def snapshot(self) -> ProgressState:
        elapsed = max(0.0, self.clock() - self.started_at)
        return ProgressState(
            bytes_transferred=self.bytes_transferred,
            total_bytes=self.total_bytes,
            elapsed=elapsed,
            estimated_remaining=self._estimate(elapsed),
        )

    def _estimate(self, elapsed: float) -> float | None:
        if self.total_bytes is None:
            return None
        remaining = max(0, self.total_bytes - self.bytes_transferred)
        if remaining == 0:
            return 0.0
        if elapsed <= 0 or self.bytes_transferred == 0:
            return None
        return remaining / (self.bytes_transferred / elapsed)
