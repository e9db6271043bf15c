from enum import Enum
from pydantic import BaseModel, Field
from typing import Any, Dict


class AllocationState(str, Enum):
    RECEIVED = "received"
    ALLOCATING = "allocating"
    COMMITTING = "committing"
    DONE = "done"
    FAILED = "failed"


class AllocationMode(str, Enum):
    COORDINATED = "coordinated"
    FALLBACK = "fallback"


class CommitResult(BaseModel):
    identifier: str
    backend: str
    location: str = Field(..., description="Path, URL or row reference of the stored record")
    size_bytes: int


class AllocationResult(BaseModel):
    identifier: str
    filename: str
    sequence: int | None = Field(None, description="Counter value; None in fallback mode")
    timestamp: str = Field(..., description="Processing time, UTC ISO-8601")
    mode: AllocationMode
    success: bool = True
    backend: str
    location: str


def summarize_event(payload: Any) -> Dict[str, Any]:
    """Pick the OpenLineage fields worth indexing or logging.

    Missing or oddly-shaped fields are reported as None rather than raising;
    the proxy does not validate event content.
    """
    if not isinstance(payload, dict):
        return {"eventType": None, "eventTime": None, "jobNamespace": None, "jobName": None,
                "runId": None, "producer": None, "inputCount": 0, "outputCount": 0}

    job = payload.get("job") if isinstance(payload.get("job"), dict) else {}
    run = payload.get("run") if isinstance(payload.get("run"), dict) else {}
    inputs = payload.get("inputs")
    outputs = payload.get("outputs")
    return {
        "eventType": payload.get("eventType"),
        "eventTime": payload.get("eventTime"),
        "jobNamespace": job.get("namespace"),
        "jobName": job.get("name"),
        "runId": run.get("runId"),
        "producer": payload.get("producer"),
        "inputCount": len(inputs) if isinstance(inputs, list) else 0,
        "outputCount": len(outputs) if isinstance(outputs, list) else 0,
    }
