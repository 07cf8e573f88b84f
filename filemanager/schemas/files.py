"""Pydantic schemas for file manager endpoints."""

from typing import List

from pydantic import BaseModel, Field

from common.types import FileInfo


class FileInfoResponse(BaseModel):
    """Response model for a single file or folder."""
    name: str
    path: str
    size: int
    is_dir: bool
    modified: float
    permissions: str
    extension: str = ""
    mime_type: str = ""

    @classmethod
    def from_info(cls, info: FileInfo) -> "FileInfoResponse":
        return cls(
            name=info.name,
            path=info.path,
            size=info.size,
            is_dir=info.is_dir,
            modified=info.modified,
            permissions=info.permissions,
            extension=info.extension,
            mime_type=info.mime_type,
        )


class ListFilesResponse(BaseModel):
    """Response model for directory listing."""
    path: str
    files: List[FileInfoResponse]


class DiskUsageResponse(BaseModel):
    """Response model for disk usage."""
    path: str
    size: int
    size_human: str


class FileContentRequest(BaseModel):
    """Request model for creating or replacing a text file."""
    path: str
    content: str = ""


class CreateFolderRequest(BaseModel):
    """Request model for folder creation."""
    path: str


class RenameRequest(BaseModel):
    """Request model for renaming a path in place."""
    path: str
    new_name: str


class TransferRequest(BaseModel):
    """Request model for copy and move."""
    sources: List[str] = Field(..., min_length=1)
    destination: str = ""
    overwrite: bool = False


class TransferResponse(BaseModel):
    """Response model for copy and move."""
    files: List[FileInfoResponse]
