"""Redis-backed counter store (external key-value coordination)."""
import asyncio
import time

import structlog
from redis import Redis
from redis.exceptions import RedisError, ResponseError

from .base import CounterStore, LockHandle, parse_counter
from ..errors import (
    CoordinationUnavailableError,
    CounterCorruptionError,
    LockNotHeldError,
    LockTimeoutError,
)

log = structlog.get_logger()

# Delete the lock only if it still carries our token.
RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class RedisCounterStore(CounterStore):
    """Counter stored under a Redis key.

    ``increment`` uses INCR, which is atomic on the server, so the common
    path needs no lock. ``acquire``/``read``/``write`` implement the full
    lock-guarded contract with ``SET NX PX``; the expiry doubles as the
    staleness timeout for crashed holders.
    """

    name = "external-kv"

    def __init__(
        self,
        redis_url: str,
        key: str = "openlineage-counter",
        stale_after: float = 10.0,
        poll_interval: float = 0.01,
    ):
        """
        Initialize Redis counter store.

        Args:
            redis_url: Redis connection URL
            key: Key holding the counter; the lock lives at ``<key>:lock``
            stale_after: Lock expiry in seconds
            poll_interval: Sleep between lock attempts
        """
        self.redis_url = redis_url
        self.key = key
        self.lock_key = f"{key}:lock"
        self.stale_after = stale_after
        self.poll_interval = poll_interval
        self._client: Redis | None = None

    def _get_client(self) -> Redis:
        """Get or create Redis client."""
        if self._client is None:
            self._client = Redis.from_url(
                self.redis_url,
                decode_responses=False,
                socket_connect_timeout=5,
                socket_timeout=5,
            )
        return self._client

    def _unavailable(self, e: RedisError) -> CoordinationUnavailableError:
        log.warning("redis.counter_unavailable", error=str(e), key=self.key)
        return CoordinationUnavailableError("counter store unreachable", error=str(e), store=self.name)

    async def acquire(self, timeout: float) -> LockHandle:
        handle = LockHandle()
        deadline = time.monotonic() + timeout
        while True:
            try:
                acquired = self._get_client().set(
                    self.lock_key,
                    handle.token,
                    nx=True,
                    px=int(self.stale_after * 1000),
                )
            except RedisError as e:
                raise self._unavailable(e) from e
            if acquired:
                return handle
            if time.monotonic() >= deadline:
                raise LockTimeoutError("timed out waiting for counter lock", key=self.lock_key, timeout=timeout, store=self.name)
            await asyncio.sleep(self.poll_interval)

    def _check_holder(self, handle: LockHandle) -> None:
        self._check_handle(handle)
        holder = self._get_client().get(self.lock_key)
        if holder is None or holder.decode("ascii", "replace") != handle.token:
            raise LockNotHeldError("counter lock was lost or expired", token=handle.token, key=self.lock_key)

    def read(self, handle: LockHandle) -> int:
        try:
            self._check_holder(handle)
            raw = self._get_client().get(self.key)
        except RedisError as e:
            raise self._unavailable(e) from e
        return parse_counter(raw, f"redis:{self.key}")

    def write(self, handle: LockHandle, value: int) -> None:
        if value < 0:
            raise ValueError("counter cannot be negative")
        try:
            self._check_holder(handle)
            self._get_client().set(self.key, str(value))
        except RedisError as e:
            raise self._unavailable(e) from e

    def release(self, handle: LockHandle) -> None:
        if handle.released:
            return
        handle.released = True
        try:
            released = self._get_client().eval(RELEASE_SCRIPT, 1, self.lock_key, handle.token)
        except RedisError as e:
            # The PX expiry frees the lock eventually.
            log.warning("redis.lock_release_failed", error=str(e), key=self.lock_key)
            return
        if not released:
            log.warning("counter.lock_lost", key=self.lock_key, token=handle.token)

    async def increment(self, timeout: float) -> int:
        try:
            return int(self._get_client().incr(self.key))
        except ResponseError as e:
            # INCR refuses values that are not integers
            raise CounterCorruptionError(
                "counter value is not an integer", source=f"redis:{self.key}", error=str(e)
            ) from e
        except RedisError as e:
            raise self._unavailable(e) from e

    def current(self) -> int | None:
        try:
            raw = self._get_client().get(self.key)
        except RedisError as e:
            log.warning("redis.counter_peek_failed", error=str(e))
            return None
        return parse_counter(raw, f"redis:{self.key}")

    async def health_check(self) -> bool:
        try:
            return bool(self._get_client().ping())
        except Exception as e:
            log.warning("redis.health_check_failed", error=str(e))
            return False

    async def close(self) -> None:
        """Close Redis connection."""
        if self._client:
            self._client.close()
            self._client = None
