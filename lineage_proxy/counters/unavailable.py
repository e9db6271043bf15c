"""Counter store for deployments without shared coordination."""
from .base import CounterStore, LockHandle
from ..errors import CoordinationUnavailableError, LockNotHeldError


class UnavailableCounterStore(CounterStore):
    """Refuses every acquisition so callers take the fallback identifier path."""

    name = "none"

    def __init__(self, reason: str = "coordination disabled"):
        self.reason = reason

    async def acquire(self, timeout: float) -> LockHandle:
        raise CoordinationUnavailableError(self.reason, store=self.name)

    def read(self, handle: LockHandle) -> int:
        raise LockNotHeldError("no counter lock can be held", store=self.name)

    def write(self, handle: LockHandle, value: int) -> None:
        raise LockNotHeldError("no counter lock can be held", store=self.name)

    def release(self, handle: LockHandle) -> None:
        handle.released = True

    def current(self) -> int | None:
        return None
