"""Durable event sinks."""
from .base import CONTENT_TYPE, EventSink, serialize
from .database import DatabaseSink
from .filesystem import FilesystemSink
from .memory import MemorySink
from .object_store import ObjectStoreSink

__all__ = [
    "CONTENT_TYPE",
    "EventSink",
    "serialize",
    "DatabaseSink",
    "FilesystemSink",
    "MemorySink",
    "ObjectStoreSink",
]
