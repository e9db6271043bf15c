from datetime import datetime, timezone

import orjson
import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, Response

from .. import __version__
from ..config import get_settings
from ..errors import (
    CounterCorruptionError,
    EventNotFoundError,
    InvalidPayloadError,
    LineageProxyError,
    SinkError,
)
from ..identifiers import validate_identifier
from ..services.allocator import Allocator, get_allocator
from .schemas import ErrorResponse, LineageAcceptedResponse, StatusResponse

router = APIRouter(prefix="/api")
log = structlog.get_logger()


def _error(request: Request, status_code: int, exc: LineageProxyError) -> JSONResponse:
    body = ErrorResponse(
        error=type(exc).__name__,
        message=exc.message,
        details=exc.details,
        correlation_id=getattr(request.state, "correlation_id", None),
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


@router.post("/v1/lineage", response_model=LineageAcceptedResponse)
async def submit_lineage_event(request: Request, allocator: Allocator = Depends(get_allocator)):
    settings = get_settings()
    body = await request.body()
    if len(body) > settings.MAX_EVENT_SIZE:
        return _error(request, 413, InvalidPayloadError(
            "event body too large", size_bytes=len(body), limit=settings.MAX_EVENT_SIZE,
        ))
    try:
        payload = orjson.loads(body)
    except orjson.JSONDecodeError as e:
        return _error(request, 400, InvalidPayloadError("request body is not valid JSON", error=str(e)))

    try:
        result = await allocator.process_event(payload)
    except InvalidPayloadError as e:
        return _error(request, 400, e)
    except CounterCorruptionError as e:
        return _error(request, 503, e)
    except SinkError as e:
        return _error(request, 500, e)

    return LineageAcceptedResponse.from_result(result, getattr(request.state, "correlation_id", None))


@router.get("/v1/lineage/{identifier}")
async def get_lineage_event(identifier: str, request: Request, allocator: Allocator = Depends(get_allocator)):
    identifier = identifier.removesuffix(".json")
    try:
        validate_identifier(identifier)
    except ValueError as e:
        return _error(request, 400, InvalidPayloadError(str(e)))
    try:
        data = await allocator.sink.read(identifier)
    except EventNotFoundError as e:
        return _error(request, 404, e)
    except SinkError as e:
        return _error(request, 502, e)
    return Response(content=data, media_type=allocator.sink.content_type)


@router.api_route("/status", methods=["GET", "HEAD"], response_model=StatusResponse)
async def status(request: Request, allocator: Allocator = Depends(get_allocator)):
    if request.method == "HEAD":
        return Response(status_code=200)

    settings = get_settings()
    try:
        counter = allocator.counter_store.current()
        state = "healthy"
        message = "OpenLineage Proxy API is running"
    except CounterCorruptionError as e:
        log.error("status.counter_corrupt", error=e.message, details=e.details)
        counter = None
        state = "degraded"
        message = "Counter is unreadable; coordinated allocation is refused"

    return StatusResponse(
        status=state,
        message=message,
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=__version__,
        endpoints={
            "lineage": "/api/v1/lineage",
            "status": "/api/status",
            "health": "/api/health",
        },
        statistics={
            "totalEventsReceived": counter,
            "eventsStored": await allocator.sink.count(),
            "storageBackend": allocator.sink.name,
            "coordination": allocator.counter_store.name,
        },
        configuration={
            "supportedMethods": ["POST"],
            "expectedContentType": "application/json",
            "maxEventSize": settings.MAX_EVENT_SIZE,
        },
    )
