"""File manager API routes."""

from typing import BinaryIO, Iterator
from urllib.parse import quote

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import StreamingResponse

from common.constants import COPY_BUFFER_SIZE
from common.types import TenantContext
from filemanager.auth import get_tenant_context
from filemanager.backends import StorageBackend, create_backend
from filemanager.dependencies import get_file_service
from filemanager.ownership import OwnershipEnforcer
from filemanager.sandbox import PathSandbox
from filemanager.schemas.common import ApiResponse
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
from filemanager.services.file_service import FileManagerService
from filemanager.utils import format_file_size


router = APIRouter(prefix="/api/v1/fs", tags=["Files"])


def _stream_and_close(stream: BinaryIO, backend: StorageBackend) -> Iterator[bytes]:
    try:
        while True:
            piece = stream.read(COPY_BUFFER_SIZE)
            if not piece:
                break
            yield piece
    finally:
        stream.close()
        backend.close()


@router.get("", response_model=ApiResponse)
def list_directory(
    path: str = Query("", description="Directory relative to the site root"),
    service: FileManagerService = Depends(get_file_service),
):
    """
    List a directory, folders first.

    Raises:
        - 403: Path escapes the site root
        - 404: Directory not found
        - 400: Path is a file
    """
    files = service.list(path)
    listing = ListFilesResponse(path=path or ".", files=[FileInfoResponse.from_info(f) for f in files])
    return ApiResponse.ok(listing.model_dump(), f"{len(files)} entries")


@router.get("/disk-usage", response_model=ApiResponse)
def disk_usage(
    path: str = Query(""),
    service: FileManagerService = Depends(get_file_service),
):
    """Total size of the files below a path."""
    size = service.disk_usage(path)
    usage = DiskUsageResponse(path=path or ".", size=size, size_human=format_file_size(size))
    return ApiResponse.ok(usage.model_dump())


@router.get("/info", response_model=ApiResponse)
def file_info(
    path: str = Query(...),
    service: FileManagerService = Depends(get_file_service),
):
    info = service.get_info(path)
    return ApiResponse.ok(FileInfoResponse.from_info(info).model_dump())


@router.get("/download")
def download_file(
    path: str = Query(...),
    tenant: TenantContext = Depends(get_tenant_context),
):
    """
    Stream a file to the client.

    The backend is owned by the response body and closed once the last
    byte is sent, so it cannot come from the per-request dependency.

    Raises:
        - 404: File not found
        - 400: Path is a folder
        - 502: Remote host unreachable
    """
    backend = create_backend(tenant)
    try:
        service = FileManagerService(backend, PathSandbox(tenant.root), OwnershipEnforcer(backend, tenant.identity))
        stream, info = service.open_content(path)
    except Exception:
        backend.close()
        raise

    return StreamingResponse(
        _stream_and_close(stream, backend),
        media_type=info.mime_type or "application/octet-stream",
        headers={
            "Content-Disposition": f"attachment; filename*=UTF-8''{quote(info.name)}",
            "Content-Length": str(info.size),
        },
    )


@router.post("/file", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
def create_file(
    request: FileContentRequest,
    service: FileManagerService = Depends(get_file_service),
):
    """
    Create a new file; parent folders are created as needed.

    Raises:
        - 409: Path already exists
    """
    info = service.create_file(request.path, request.content.encode("utf-8"))
    return ApiResponse.ok(FileInfoResponse.from_info(info).model_dump(), "File created")


@router.put("/file", response_model=ApiResponse)
def update_file(
    request: FileContentRequest,
    service: FileManagerService = Depends(get_file_service),
):
    info = service.update_file(request.path, request.content.encode("utf-8"))
    return ApiResponse.ok(FileInfoResponse.from_info(info).model_dump(), "File updated")


@router.post("/folder", response_model=ApiResponse, status_code=status.HTTP_201_CREATED)
def create_folder(
    request: CreateFolderRequest,
    service: FileManagerService = Depends(get_file_service),
):
    info = service.create_folder(request.path)
    return ApiResponse.ok(FileInfoResponse.from_info(info).model_dump(), "Folder created")


@router.put("/rename", response_model=ApiResponse)
def rename(
    request: RenameRequest,
    service: FileManagerService = Depends(get_file_service),
):
    info = service.rename(request.path, request.new_name)
    return ApiResponse.ok(FileInfoResponse.from_info(info).model_dump(), "Renamed")


@router.delete("", response_model=ApiResponse)
def delete(
    path: str = Query(...),
    recursive: bool = Query(False),
    service: FileManagerService = Depends(get_file_service),
):
    """
    Delete a file or folder.

    Raises:
        - 400: Path is the site root
        - 404: Path not found
        - 409: Folder not empty and recursive not set
    """
    service.delete(path, recursive=recursive)
    return ApiResponse.ok({"path": path}, "Deleted")


@router.post("/copy", response_model=ApiResponse)
def copy(
    request: TransferRequest,
    service: FileManagerService = Depends(get_file_service),
):
    files = service.copy(request.sources, request.destination, overwrite=request.overwrite)
    result = TransferResponse(files=[FileInfoResponse.from_info(f) for f in files])
    return ApiResponse.ok(result.model_dump(), f"{len(files)} items copied")


@router.post("/move", response_model=ApiResponse)
def move(
    request: TransferRequest,
    service: FileManagerService = Depends(get_file_service),
):
    files = service.move(request.sources, request.destination, overwrite=request.overwrite)
    result = TransferResponse(files=[FileInfoResponse.from_info(f) for f in files])
    return ApiResponse.ok(result.model_dump(), f"{len(files)} items moved")
