"""Allocator: counter acquisition, identifier generation and sink commit per event."""
import asyncio
import time
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any

import structlog

from ..config import Settings, get_settings
from ..counters import (
    CounterStore,
    FileCounterStore,
    MemoryCounterStore,
    RedisCounterStore,
    UnavailableCounterStore,
)
from ..errors import (
    CoordinationUnavailableError,
    LineageProxyError,
    LockNotHeldError,
    LockTimeoutError,
    SinkError,
)
from ..identifiers import IdentifierGenerator, filename_for
from ..metrics import Metrics, metrics as default_metrics
from ..models import AllocationMode, AllocationResult, AllocationState, summarize_event
from ..sinks import DatabaseSink, EventSink, FilesystemSink, MemorySink, ObjectStoreSink
from .forwarder import WebhookForwarder

log = structlog.get_logger()


class Allocator:
    """
    Turns one inbound payload into one durably stored, uniquely named event.

    Per event: RECEIVED -> ALLOCATING -> COMMITTING -> DONE, or FAILED from
    ALLOCATING/COMMITTING. The counter lock is held only around the counter
    increment, never across the sink write.

    A sink failure after allocation leaves a sequence gap: the counter value
    is consumed but nothing is stored under it. Sequence numbers are unique
    and increasing, not contiguous.
    """

    def __init__(
        self,
        counter_store: CounterStore,
        sink: EventSink,
        generator: IdentifierGenerator | None = None,
        lock_timeout: float = 5.0,
        forwarder: WebhookForwarder | None = None,
        metrics: Metrics | None = None,
    ):
        self.counter_store = counter_store
        self.sink = sink
        self.generator = generator or IdentifierGenerator()
        self.lock_timeout = lock_timeout
        self.forwarder = forwarder
        self.metrics = metrics

    async def process_event(self, payload: Any) -> AllocationResult:
        """
        Allocate an identifier for ``payload`` and commit it.

        Args:
            payload: JSON-serializable event body

        Returns:
            The allocation result for a successful commit

        Raises:
            InvalidPayloadError: Payload cannot be serialized (no sequence consumed)
            CounterCorruptionError: Persisted counter unreadable; nothing allocated
            SinkWriteError: Storage rejected the write; ``details`` carry the
                consumed identifier and sequence
        """
        received_at = datetime.now(timezone.utc)
        state = AllocationState.RECEIVED
        bound = log.bind(counter_store=self.counter_store.name, backend=self.sink.name)

        state = self._transition(bound, state, AllocationState.ALLOCATING)
        sequence: int | None = None
        try:
            size = len(self.sink.serialize(payload))
            sequence = await self._allocate_sequence(bound)
            identifier = self.generator.generate(sequence)
        except LineageProxyError as e:
            self._fail(bound, state, e)
            raise

        mode = AllocationMode.COORDINATED if sequence is not None else AllocationMode.FALLBACK
        bound = bound.bind(identifier=identifier, sequence=sequence, mode=mode.value)
        state = self._transition(bound, state, AllocationState.COMMITTING)

        started = time.perf_counter()
        try:
            # A caller that goes away mid-commit must not orphan the sequence.
            commit = await asyncio.shield(self.sink.commit(identifier, payload))
        except SinkError as e:
            e.details.setdefault("identifier", identifier)
            e.details["sequence"] = sequence
            self._fail(bound, state, e)
            raise
        duration = time.perf_counter() - started

        self._transition(bound, state, AllocationState.DONE)
        if self.metrics:
            self.metrics.record_commit(mode.value, self.sink.name, size, duration)
        bound.info("lineage.event_stored", location=commit.location, size_bytes=size, **summarize_event(payload))

        if self.forwarder is not None:
            await self.forwarder.forward(identifier, payload)

        return AllocationResult(
            identifier=identifier,
            filename=filename_for(identifier),
            sequence=sequence,
            timestamp=received_at.isoformat(),
            mode=mode,
            backend=commit.backend,
            location=commit.location,
        )

    async def _allocate_sequence(self, bound) -> int | None:
        """Next counter value, or None when coordination is unavailable."""
        try:
            return await self.counter_store.increment(self.lock_timeout)
        except (CoordinationUnavailableError, LockNotHeldError) as e:
            # A lost lock is detected before the counter write, so nothing was consumed.
            if isinstance(e, LockTimeoutError):
                reason = "lock_timeout"
            elif isinstance(e, LockNotHeldError):
                reason = "lock_lost"
            else:
                reason = "unavailable"
            bound.warning("allocation.fallback", reason=reason, error=e.message, details=e.details)
            if self.metrics:
                self.metrics.record_fallback(reason)
            return None

    @staticmethod
    def _transition(bound, current: AllocationState, target: AllocationState) -> AllocationState:
        bound.debug("allocation.transition", from_state=current.value, to_state=target.value)
        return target

    def _fail(self, bound, state: AllocationState, error: LineageProxyError) -> None:
        bound.error(
            "allocation.failed",
            state=state.value,
            error_type=type(error).__name__,
            error=error.message,
            details=error.details,
        )
        if self.metrics:
            self.metrics.record_failure(type(error).__name__)

    async def health_check(self) -> dict[str, bool]:
        return {
            "counter_store": await self.counter_store.health_check(),
            "sink": await self.sink.health_check(),
        }

    async def close(self) -> None:
        await self.counter_store.close()
        await self.sink.close()
        if self.forwarder is not None:
            await self.forwarder.close()


def build_counter_store(settings: Settings) -> CounterStore:
    """
    Create the counter store selected by COORDINATION.

    Returns:
        CounterStore instance; ``external-kv`` without REDIS_URL falls back
        to no coordination.
    """
    if settings.COORDINATION == "external-kv":
        if not settings.REDIS_URL:
            log.warning(
                "coordination.fallback",
                requested="external-kv",
                actual="none",
                reason="REDIS_URL not configured",
            )
            return UnavailableCounterStore("REDIS_URL not configured")
        log.info("coordination.selected", type="external-kv", key=settings.COUNTER_KEY)
        return RedisCounterStore(
            str(settings.REDIS_URL),
            key=settings.COUNTER_KEY,
            stale_after=settings.LOCK_STALE_SECONDS,
        )
    if settings.COORDINATION == "none":
        log.info("coordination.selected", type="none")
        return UnavailableCounterStore()
    if settings.COORDINATION == "memory":
        log.info("coordination.selected", type="memory")
        return MemoryCounterStore()

    log.info("coordination.selected", type="lock-file", path=str(settings.counter_path))
    return FileCounterStore(settings.counter_path, stale_after=settings.LOCK_STALE_SECONDS)


def build_sink(settings: Settings) -> EventSink:
    """
    Create the sink selected by STORAGE_BACKEND.

    Returns:
        EventSink instance; remote backends without a URL fall back to the
        filesystem.
    """
    if settings.STORAGE_BACKEND == "object-store":
        if settings.OBJECT_STORE_URL:
            log.info("sink.selected", type="object-store", url=settings.OBJECT_STORE_URL)
            return ObjectStoreSink(settings.OBJECT_STORE_URL, token=settings.OBJECT_STORE_TOKEN)
        log.warning("sink.fallback", requested="object-store", actual="filesystem", reason="OBJECT_STORE_URL not configured")
    elif settings.STORAGE_BACKEND == "database":
        if settings.DATABASE_URL:
            log.info("sink.selected", type="database")
            return DatabaseSink(settings.DATABASE_URL)
        log.warning("sink.fallback", requested="database", actual="filesystem", reason="DATABASE_URL not configured")
    elif settings.STORAGE_BACKEND == "memory":
        log.info("sink.selected", type="memory")
        return MemorySink()

    log.info("sink.selected", type="filesystem", directory=str(settings.STORAGE_DIR))
    return FilesystemSink(settings.STORAGE_DIR)


def build_allocator(settings: Settings, metrics: Metrics | None = None) -> Allocator:
    forwarder = None
    if settings.WEBHOOK_URL:
        forwarder = WebhookForwarder(settings.WEBHOOK_URL, token=settings.WEBHOOK_TOKEN)
    return Allocator(
        counter_store=build_counter_store(settings),
        sink=build_sink(settings),
        generator=IdentifierGenerator(width=settings.IDENTIFIER_WIDTH),
        lock_timeout=settings.LOCK_TIMEOUT_SECONDS,
        forwarder=forwarder,
        metrics=metrics,
    )


@lru_cache(maxsize=1)
def get_allocator() -> Allocator:
    """Process-wide allocator built from settings."""
    return build_allocator(get_settings(), metrics=default_metrics)
