"""Base interface for lock-guarded counter stores."""
import time
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator

from ..errors import CounterCorruptionError, LockNotHeldError
from ..identifiers import random_token


@dataclass
class LockHandle:
    """Proof of an exclusive claim on the counter."""

    token: str = field(default_factory=random_token)
    acquired_at: float = field(default_factory=time.monotonic)
    released: bool = False


def parse_counter(text: str | bytes | None, source: str) -> int:
    """
    Parse a persisted counter value.

    Args:
        text: Raw stored value; None means the counter was never written.
        source: Where the value came from, for the error message.

    Returns:
        The counter as a non-negative integer.

    Raises:
        CounterCorruptionError: If the value is not a non-negative integer.
    """
    if text is None:
        return 0
    if isinstance(text, bytes):
        try:
            text = text.decode("ascii")
        except UnicodeDecodeError:
            raise CounterCorruptionError("counter is not ASCII text", source=source) from None
    stripped = text.strip()
    if not stripped.isdigit() or not stripped.isascii():
        raise CounterCorruptionError(
            "counter value is not a non-negative integer",
            source=source,
            value=stripped[:64],
        )
    return int(stripped)


class CounterStore(ABC):
    """Abstract durable integer counter with cooperative mutual exclusion."""

    name = "abstract"

    @abstractmethod
    async def acquire(self, timeout: float) -> LockHandle:
        """
        Claim the counter lock.

        Args:
            timeout: Seconds to wait for another holder to release.

        Returns:
            Handle to pass to read/write/release.

        Raises:
            LockTimeoutError: If the lock was not obtained in time.
            CoordinationUnavailableError: If the lock medium is unusable.
        """

    @abstractmethod
    def read(self, handle: LockHandle) -> int:
        """Return the counter value. Only valid while holding the lock."""

    @abstractmethod
    def write(self, handle: LockHandle, value: int) -> None:
        """Durably persist a new counter value. Only valid while holding the lock."""

    @abstractmethod
    def release(self, handle: LockHandle) -> None:
        """Relinquish the lock. Safe to call more than once."""

    @abstractmethod
    def current(self) -> int | None:
        """Lock-free peek at the counter for status reporting; None if unknown."""

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        pass

    @asynccontextmanager
    async def locked(self, timeout: float) -> AsyncIterator[LockHandle]:
        """Hold the lock for the body of a ``async with`` block."""
        handle = await self.acquire(timeout)
        try:
            yield handle
        finally:
            self.release(handle)

    async def increment(self, timeout: float) -> int:
        """Read, add one and write under the lock; return the new value."""
        async with self.locked(timeout) as handle:
            value = self.read(handle) + 1
            self.write(handle, value)
        return value

    @staticmethod
    def _check_handle(handle: LockHandle) -> None:
        if handle.released:
            raise LockNotHeldError("lock handle has already been released", token=handle.token)
