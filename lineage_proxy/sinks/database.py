"""Relational event sink (SQLAlchemy)."""
from typing import Any

import structlog
from sqlalchemy import Column, DateTime, Index, Integer, String, Text, create_engine, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from .base import EventSink
from ..errors import DuplicateEventError, EventNotFoundError, SinkWriteError
from ..identifiers import parse_identifier
from ..models import CommitResult, summarize_event

log = structlog.get_logger()

Base = declarative_base()


class LineageEventRecord(Base):
    """One stored lineage event; payload is kept as the exact serialized text."""
    __tablename__ = "openlineage_events"

    id = Column(Integer, primary_key=True, autoincrement=True)
    event_id = Column(String(255), unique=True, nullable=False)
    sort_key = Column(String(32), nullable=False)  # sequence or fallback timestamp
    event_type = Column(String(50))
    event_time = Column(String(64))
    job_namespace = Column(String(255))
    job_name = Column(String(255))
    run_id = Column(String(255))
    payload = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        Index("idx_openlineage_sort_key", "sort_key"),
        Index("idx_openlineage_job", "job_namespace", "job_name"),
        Index("idx_openlineage_event_time", "event_time"),
    )


def _text(value: Any, limit: int) -> str | None:
    if value is None:
        return None
    return str(value)[:limit]


class DatabaseSink(EventSink):
    """Stores each event as a row of ``openlineage_events``."""

    name = "database"

    def __init__(self, url: str | None = None, engine: Engine | None = None):
        if engine is None:
            if url is None:
                raise ValueError("DatabaseSink needs a url or an engine")
            engine = create_engine(url, pool_pre_ping=True)
        self._engine = engine
        self._session_factory = sessionmaker(engine, expire_on_commit=False)
        self._schema_ready = False

    def _ensure_schema(self) -> None:
        if not self._schema_ready:
            Base.metadata.create_all(self._engine)
            self._schema_ready = True

    async def commit(self, identifier: str, payload: Any) -> CommitResult:
        sort_key, _ = parse_identifier(identifier)
        data = self.serialize(payload)
        summary = summarize_event(payload)
        record = LineageEventRecord(
            event_id=identifier,
            sort_key=sort_key,
            event_type=_text(summary["eventType"], 50),
            event_time=_text(summary["eventTime"], 64),
            job_namespace=_text(summary["jobNamespace"], 255),
            job_name=_text(summary["jobName"], 255),
            run_id=_text(summary["runId"], 255),
            payload=data.decode("utf-8"),
        )
        try:
            self._ensure_schema()
            with self._session_factory() as session, session.begin():
                session.add(record)
        except IntegrityError as e:
            log.error("sink.duplicate", identifier=identifier, backend=self.name)
            raise DuplicateEventError("identifier already stored", identifier=identifier) from e
        except SQLAlchemyError as e:
            log.error("sink.commit_failed", identifier=identifier, backend=self.name, error=str(e))
            raise SinkWriteError("database write failed", identifier=identifier, error=str(e)) from e

        log.info("sink.committed", identifier=identifier, backend=self.name, row_id=record.id, size_bytes=len(data))
        return CommitResult(
            identifier=identifier,
            backend=self.name,
            location=f"{LineageEventRecord.__tablename__}/{record.id}",
            size_bytes=len(data),
        )

    async def read(self, identifier: str) -> bytes:
        self._ensure_schema()
        with self._session_factory() as session:
            payload = session.scalar(
                select(LineageEventRecord.payload).where(LineageEventRecord.event_id == identifier)
            )
        if payload is None:
            raise EventNotFoundError("event not found", identifier=identifier)
        return payload.encode("utf-8")

    async def count(self) -> int:
        self._ensure_schema()
        with self._session_factory() as session:
            return session.scalar(select(func.count()).select_from(LineageEventRecord))

    async def health_check(self) -> bool:
        try:
            self._ensure_schema()
            with self._engine.connect():
                return True
        except SQLAlchemyError as e:
            log.warning("sink.health_check_failed", backend=self.name, error=str(e))
            return False

    async def close(self) -> None:
        self._engine.dispose()
