from pydantic import BaseModel, Field
from typing import Generic, TypeVar, Optional, Any, Dict

DataType = TypeVar("DataType")

class APIResponse(BaseModel, Generic[DataType]):
    """Envelope for every successful response."""
    message: str = Field(..., description="A human-readable message about the response.")
    data: Optional[DataType] = Field(None, description="Payload, if any.")

class FlushAccepted(BaseModel):
    reason: str
    queued: bool = Field(..., description="False when there was no live session to flush.")

class ErrorDetail(BaseModel):
    code: str = Field(..., description="Machine-readable error code, e.g. CONFLICT")
    message: str = Field(..., description="Message safe to show the candidate")
    details: Optional[Dict[str, Any]] = Field(None, description="Extra context, e.g. validation errors")

class ErrorResponse(BaseModel):
    error: ErrorDetail
    timestamp: str = Field(..., description="ISO 8601 UTC timestamp")
    path: str
    request_id: Optional[str] = Field(None, description="Matches the X-Request-ID response header")
