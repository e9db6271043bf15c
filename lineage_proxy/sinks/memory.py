"""In-memory event sink."""
from typing import Any
import structlog
from .base import EventSink
from ..errors import DuplicateEventError, EventNotFoundError
from ..identifiers import filename_for, validate_identifier
from ..models import CommitResult

log = structlog.get_logger()


class MemorySink(EventSink):
    """Keeps serialized events in a dict. Not durable; for development and tests."""

    name = "memory"

    def __init__(self):
        self._records: dict[str, bytes] = {}

    async def commit(self, identifier: str, payload: Any) -> CommitResult:
        validate_identifier(identifier)
        data = self.serialize(payload)
        existing = self._records.get(identifier)
        if existing is not None and existing != data:
            raise DuplicateEventError("identifier already stored with different content", identifier=identifier)
        self._records[identifier] = data
        log.info("sink.committed", identifier=identifier, backend=self.name, size_bytes=len(data))
        return CommitResult(
            identifier=identifier,
            backend=self.name,
            location=f"memory://{filename_for(identifier)}",
            size_bytes=len(data),
        )

    async def read(self, identifier: str) -> bytes:
        try:
            return self._records[identifier]
        except KeyError:
            raise EventNotFoundError("event not found", identifier=identifier) from None

    async def count(self) -> int:
        return len(self._records)
