"""In-process counter store."""
import asyncio
import structlog
from .base import CounterStore, LockHandle
from ..errors import LockNotHeldError, LockTimeoutError

log = structlog.get_logger()


class MemoryCounterStore(CounterStore):
    """Counter held in memory, guarded by an asyncio lock.

    Only coordinates tasks of one event loop; state is lost on restart.
    """

    name = "memory"

    def __init__(self, initial: int = 0):
        self._value = initial
        self._lock = asyncio.Lock()
        self._holder: str | None = None

    async def acquire(self, timeout: float) -> LockHandle:
        try:
            await asyncio.wait_for(self._lock.acquire(), timeout)
        except asyncio.TimeoutError:
            raise LockTimeoutError("timed out waiting for counter lock", timeout=timeout, store=self.name) from None
        handle = LockHandle()
        self._holder = handle.token
        return handle

    def _check_holder(self, handle: LockHandle) -> None:
        self._check_handle(handle)
        if self._holder != handle.token:
            raise LockNotHeldError("handle does not hold the counter lock", token=handle.token)

    def read(self, handle: LockHandle) -> int:
        self._check_holder(handle)
        return self._value

    def write(self, handle: LockHandle, value: int) -> None:
        self._check_holder(handle)
        self._value = value

    def release(self, handle: LockHandle) -> None:
        if handle.released:
            return
        handle.released = True
        if self._holder == handle.token:
            self._holder = None
            self._lock.release()

    def current(self) -> int | None:
        return self._value
