"""Lock-guarded counter stores."""
from .base import CounterStore, LockHandle, parse_counter
from .lockfile import FileCounterStore
from .memory import MemoryCounterStore
from .redis_kv import RedisCounterStore
from .unavailable import UnavailableCounterStore

__all__ = [
    "CounterStore",
    "LockHandle",
    "parse_counter",
    "FileCounterStore",
    "MemoryCounterStore",
    "RedisCounterStore",
    "UnavailableCounterStore",
]
