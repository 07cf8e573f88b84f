"""Upload API routes: single-shot and chunked."""

from fastapi import APIRouter, Depends, File, Form, UploadFile

from filemanager import config
from filemanager.dependencies import get_transfer_service
from filemanager.exceptions import InvalidRequestError
from filemanager.progress import ProgressStatus
from filemanager.schemas.common import ApiResponse
from filemanager.schemas.transfers import (
    ChunkInitRequest,
    ChunkInitResponse,
    OperationResponse,
    ProgressResponse,
)
from filemanager.services.transfer_service import TransferService

router = APIRouter(prefix="/api/v1/upload", tags=["Uploads"])


@router.post("", response_model=ApiResponse)
def upload_file(
    file: UploadFile = File(...),
    destination: str = Form(""),
    service: TransferService = Depends(get_transfer_service),
):
    """
    Stream one file into a directory.

    Parameters:
        - file: File to upload (multipart/form-data)
        - destination: Directory relative to the site root

    Returns:
        - upload_id: Progress record id
        - status: completed or failed
        - path: Relative path of the stored file (deduplicated)
    """
    declared_size = file.size or 0
    if declared_size > config.MAX_UPLOAD_SIZE:
        raise InvalidRequestError(
            f"file of {declared_size} bytes exceeds the upload limit of {config.MAX_UPLOAD_SIZE} bytes"
        )

    op_id = service.stream_upload(file.filename, destination, file.file, declared_size)
    record = service.get_progress(op_id)
    result = OperationResponse(upload_id=op_id, status=record.status.value, path=record.path)

    if record.status == ProgressStatus.FAILED:
        return ApiResponse(success=False, message=record.error or "Upload failed", data=result.model_dump())
    return ApiResponse.ok(result.model_dump(), "File uploaded")


@router.post("/chunked/init", response_model=ApiResponse)
def init_chunked_upload(
    request: ChunkInitRequest,
    service: TransferService = Depends(get_transfer_service),
):
    """
    Open a chunked upload session.

    Returns:
        - upload_id: Session id, used for every chunk and for progress
        - total_chunks: Number of chunks expected
    """
    session = service.init_session(request.filename, request.destination, request.total_size, request.chunk_size)
    result = ChunkInitResponse(
        upload_id=session.id,
        filename=session.filename,
        total_chunks=session.total_chunks,
        chunk_size=session.chunk_size,
    )
    return ApiResponse.ok(result.model_dump(), "Upload session created")


@router.post("/chunked", response_model=ApiResponse)
def upload_chunk(
    upload_id: str = Form(...),
    chunk_index: int = Form(...),
    chunk: UploadFile = File(...),
    service: TransferService = Depends(get_transfer_service),
):
    """
    Send one chunk; the last missing chunk assembles the file.

    Raises:
        - 400: Index out of range or chunk too large
        - 404: Unknown or finished session
    """
    record = service.put_chunk(upload_id, chunk_index, chunk.file.read())
    return ApiResponse.ok(ProgressResponse.from_record(record).model_dump(), f"Chunk {chunk_index} received")


@router.delete("/chunked/{upload_id}", response_model=ApiResponse)
def abandon_chunked_upload(
    upload_id: str,
    service: TransferService = Depends(get_transfer_service),
):
    service.abandon_session(upload_id)
    return ApiResponse.ok({"upload_id": upload_id}, "Upload session discarded")
