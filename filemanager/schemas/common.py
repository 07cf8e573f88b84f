"""Common schemas used across multiple endpoints."""

from datetime import datetime, timezone
from typing import Any, Optional

from pydantic import BaseModel, Field


def _utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class ErrorDetail(BaseModel):
    """Machine-readable part of a failed response."""
    code: str
    details: Optional[str] = None


class ApiResponse(BaseModel):
    """Envelope wrapping every API response."""
    success: bool
    message: str = ""
    data: Optional[Any] = None
    error: Optional[ErrorDetail] = None
    timestamp: str = Field(default_factory=_utc_timestamp)

    @classmethod
    def ok(cls, data: Any = None, message: str = "") -> "ApiResponse":
        return cls(success=True, message=message, data=data)

    @classmethod
    def fail(cls, code: str, message: str, details: Optional[str] = None) -> "ApiResponse":
        return cls(success=False, message=message, error=ErrorDetail(code=code, details=details))
