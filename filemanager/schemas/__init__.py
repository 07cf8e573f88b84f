"""Pydantic schemas for API requests and responses."""

from filemanager.schemas.common import ApiResponse, ErrorDetail
from filemanager.schemas.files import (
    CreateFolderRequest,
    DiskUsageResponse,
    FileContentRequest,
    FileInfoResponse,
    ListFilesResponse,
    RenameRequest,
    TransferRequest,
    TransferResponse,
)
from filemanager.schemas.transfers import (
    ChunkInitRequest,
    ChunkInitResponse,
    CompressRequest,
    ExtractRequest,
    OperationResponse,
    ProgressResponse,
)

__all__ = [
    "ApiResponse",
    "ErrorDetail",
    "CreateFolderRequest",
    "DiskUsageResponse",
    "FileContentRequest",
    "FileInfoResponse",
    "ListFilesResponse",
    "RenameRequest",
    "TransferRequest",
    "TransferResponse",
    "ChunkInitRequest",
    "ChunkInitResponse",
    "CompressRequest",
    "ExtractRequest",
    "OperationResponse",
    "ProgressResponse",
]
