"""Pydantic schemas for upload, archive and progress endpoints."""

from typing import List, Optional

from pydantic import BaseModel, Field

from common.constants import DEFAULT_COMPRESSION_LEVEL
from filemanager.progress import ProgressRecord


class ProgressResponse(BaseModel):
    """Response model for a progress record."""
    id: str
    filename: Optional[str] = None
    path: Optional[str] = None
    percentage: int
    transferred_bytes: int
    total_bytes: int
    status: str
    error: Optional[str] = None

    @classmethod
    def from_record(cls, record: ProgressRecord) -> "ProgressResponse":
        return cls(**record.to_dict())


class OperationResponse(BaseModel):
    """Response model for an operation that reports through progress."""
    upload_id: str
    status: str
    path: Optional[str] = None


class ChunkInitRequest(BaseModel):
    """Request model for opening a chunked upload."""
    filename: str
    destination: str = ""
    total_size: int = Field(..., gt=0)
    chunk_size: Optional[int] = Field(None, gt=0)


class ChunkInitResponse(BaseModel):
    """Response model for an opened chunked upload."""
    upload_id: str
    filename: str
    total_chunks: int
    chunk_size: int


class CompressRequest(BaseModel):
    """Request model for zip creation."""
    paths: List[str] = Field(..., min_length=1)
    output: str
    level: int = DEFAULT_COMPRESSION_LEVEL


class ExtractRequest(BaseModel):
    """Request model for zip extraction."""
    source: str
    destination: str = ""
