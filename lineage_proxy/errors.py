"""Error taxonomy shared by counter stores, sinks and the allocator."""
from typing import Any


class LineageProxyError(Exception):
    """Base error. ``details`` is surfaced in logs and HTTP error bodies."""

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details: dict[str, Any] = details


class CoordinationUnavailableError(LineageProxyError):
    """The counter store cannot coordinate (medium missing, unreachable or disabled)."""


class LockTimeoutError(CoordinationUnavailableError):
    """Another holder kept the counter lock past the acquisition timeout."""


class LockNotHeldError(LineageProxyError):
    """Counter read or written without a live lock handle."""


class CounterCorruptionError(LineageProxyError):
    """Persisted counter value is not a non-negative integer.

    Never recovered automatically: resetting to zero would reissue
    sequence numbers that already name stored events.
    """


class SinkError(LineageProxyError):
    """Base for storage failures."""


class SinkWriteError(SinkError):
    """The storage medium rejected the write."""


class DuplicateEventError(SinkWriteError):
    """An event is already stored under this identifier."""


class InvalidPayloadError(SinkError):
    """Payload cannot be serialized to JSON."""


class EventNotFoundError(SinkError):
    """No stored event under the requested identifier."""
