"""HTTP object storage sink.

Speaks the plain PUT/GET object protocol shared by blob stores and
S3-compatible gateways that accept bearer tokens: each event is one object
named ``<identifier>.json`` under ``base_url``.
"""
from typing import Any

import httpx
import structlog

from .base import EventSink
from ..errors import EventNotFoundError, SinkError, SinkWriteError
from ..identifiers import filename_for, validate_identifier
from ..models import CommitResult

log = structlog.get_logger()


class ObjectStoreSink(EventSink):
    """Stores events as JSON objects in a remote bucket."""

    name = "object-store"

    def __init__(self, base_url: str, token: str = "", client: httpx.AsyncClient | None = None, timeout: float = 10.0):
        """
        Initialize object store sink.

        Args:
            base_url: Bucket or container URL objects are written under
            token: Bearer token; omitted from requests when empty
            client: Preconfigured client (tests inject a MockTransport here)
            timeout: Per-request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._headers = headers

    def url_for(self, identifier: str) -> str:
        return f"{self.base_url}/{filename_for(validate_identifier(identifier))}"

    async def commit(self, identifier: str, payload: Any) -> CommitResult:
        url = self.url_for(identifier)
        data = self.serialize(payload)
        try:
            response = await self._client.put(
                url,
                content=data,
                headers={**self._headers, "Content-Type": self.content_type},
            )
        except httpx.HTTPError as e:
            log.error("sink.commit_failed", identifier=identifier, backend=self.name, error=str(e))
            raise SinkWriteError("object store request failed", identifier=identifier, url=url, error=str(e)) from e

        if not response.is_success:
            log.error("sink.commit_failed", identifier=identifier, backend=self.name, status_code=response.status_code)
            raise SinkWriteError(
                "object store rejected the write",
                identifier=identifier,
                url=url,
                status_code=response.status_code,
            )

        log.info("sink.committed", identifier=identifier, backend=self.name, url=url, size_bytes=len(data))
        return CommitResult(identifier=identifier, backend=self.name, location=url, size_bytes=len(data))

    async def read(self, identifier: str) -> bytes:
        url = self.url_for(identifier)
        try:
            response = await self._client.get(url, headers=self._headers)
        except httpx.HTTPError as e:
            raise SinkError("object store request failed", identifier=identifier, url=url, error=str(e)) from e
        if response.status_code == 404:
            raise EventNotFoundError("event not found", identifier=identifier)
        if not response.is_success:
            raise SinkError("object store read failed", identifier=identifier, url=url, status_code=response.status_code)
        return response.content

    async def health_check(self) -> bool:
        try:
            response = await self._client.head(self.base_url, headers=self._headers)
        except httpx.HTTPError as e:
            log.warning("sink.health_check_failed", backend=self.name, error=str(e))
            return False
        return response.status_code < 500

    async def close(self) -> None:
        await self._client.aclose()
