"""Base interface for event sinks."""
from abc import ABC, abstractmethod
from typing import Any

import orjson

from ..errors import InvalidPayloadError
from ..models import CommitResult

CONTENT_TYPE = "application/json"


def serialize(payload: Any) -> bytes:
    """
    Pretty-print a payload as JSON (2-space indent, key order preserved).

    Raises:
        InvalidPayloadError: If the payload cannot be represented as JSON.
    """
    try:
        return orjson.dumps(payload, option=orjson.OPT_INDENT_2)
    except orjson.JSONEncodeError as e:
        raise InvalidPayloadError("payload is not JSON serializable", error=str(e)) from e


class EventSink(ABC):
    """Durable storage for serialized events, addressed by identifier.

    Every write targets its own identifier, so implementations must be safe
    for concurrent commits of different identifiers.
    """

    name = "abstract"
    content_type = CONTENT_TYPE

    @staticmethod
    def serialize(payload: Any) -> bytes:
        return serialize(payload)

    @abstractmethod
    async def commit(self, identifier: str, payload: Any) -> CommitResult:
        """
        Durably store a payload.

        Args:
            identifier: Event identifier (see ``lineage_proxy.identifiers``)
            payload: JSON-serializable event body

        Returns:
            Where and how much was written

        Raises:
            InvalidPayloadError: If the payload cannot be serialized
            SinkWriteError: If the medium rejected the write
        """

    @abstractmethod
    async def read(self, identifier: str) -> bytes:
        """
        Fetch the stored bytes of an event.

        Raises:
            EventNotFoundError: If nothing is stored under ``identifier``
        """

    async def count(self) -> int | None:
        """Number of stored events, or None when the medium cannot tell cheaply."""
        return None

    async def health_check(self) -> bool:
        return True

    async def close(self) -> None:
        pass
