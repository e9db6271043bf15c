"""Local filesystem event sink."""
import os
import secrets
from pathlib import Path
from typing import Any

import structlog

from .base import EventSink
from ..errors import EventNotFoundError, SinkWriteError
from ..identifiers import FILE_SUFFIX, SEPARATOR, filename_for, validate_identifier
from ..models import CommitResult

log = structlog.get_logger()


class FilesystemSink(EventSink):
    """Writes each event to ``<directory>/<identifier>.json``.

    Files are written to a temporary name, fsynced, then renamed into place,
    so a reader never sees a partial record. Re-committing an identifier
    replaces the file with the same bytes.
    """

    name = "filesystem"

    def __init__(self, directory: str | os.PathLike):
        self.directory = Path(directory)

    def path_for(self, identifier: str) -> Path:
        return self.directory / filename_for(validate_identifier(identifier))

    async def commit(self, identifier: str, payload: Any) -> CommitResult:
        path = self.path_for(identifier)
        data = self.serialize(payload)
        tmp = self.directory / f".{path.name}.{os.getpid()}.{secrets.token_hex(6)}.tmp"
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with open(tmp, "wb") as fh:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp, path)
        except OSError as e:
            try:
                tmp.unlink(missing_ok=True)
            except OSError:
                pass
            log.error("sink.commit_failed", identifier=identifier, backend=self.name, error=str(e))
            raise SinkWriteError("failed to write event file", identifier=identifier, path=str(path), error=str(e)) from e

        log.info("sink.committed", identifier=identifier, backend=self.name, path=str(path), size_bytes=len(data))
        return CommitResult(identifier=identifier, backend=self.name, location=str(path), size_bytes=len(data))

    async def read(self, identifier: str) -> bytes:
        path = self.path_for(identifier)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            raise EventNotFoundError("event not found", identifier=identifier) from None

    async def count(self) -> int:
        if not self.directory.is_dir():
            return 0
        return sum(1 for _ in self.directory.glob(f"*{SEPARATOR}*{FILE_SUFFIX}"))

    async def health_check(self) -> bool:
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            log.warning("sink.health_check_failed", backend=self.name, error=str(e))
            return False
        return os.access(self.directory, os.W_OK)
