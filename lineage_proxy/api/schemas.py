from pydantic import BaseModel, Field
from typing import Any, Dict
from ..models import AllocationMode, AllocationResult

class LineageAcceptedResponse(BaseModel):
    success: bool = True
    message: str
    identifier: str
    filename: str
    sequence: int | None = None
    timestamp: str
    mode: AllocationMode
    backend: str
    location: str
    correlation_id: str | None = None

    @classmethod
    def from_result(cls, result: AllocationResult, correlation_id: str | None = None) -> "LineageAcceptedResponse":
        return cls(
            message=f"Event saved successfully to {result.filename}",
            correlation_id=correlation_id,
            **result.model_dump(exclude={"success"}),
        )

class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    message: str
    details: Dict[str, Any] = Field(default_factory=dict)
    correlation_id: str | None = None

class StatusResponse(BaseModel):
    status: str
    message: str
    timestamp: str
    version: str
    endpoints: Dict[str, str]
    statistics: Dict[str, Any]
    configuration: Dict[str, Any]
