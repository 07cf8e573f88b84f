"""Archive API routes."""

from fastapi import APIRouter, Depends

from filemanager.dependencies import get_archive_service
from filemanager.progress import ProgressStatus
from filemanager.schemas.common import ApiResponse
from filemanager.schemas.transfers import CompressRequest, ExtractRequest, OperationResponse
from filemanager.services.archive_service import ArchiveService

router = APIRouter(prefix="/api/v1", tags=["Archives"])


def _operation_result(service: ArchiveService, op_id: str, done_message: str) -> ApiResponse:
    record = service.registry.require(op_id)
    result = OperationResponse(upload_id=op_id, status=record.status.value, path=record.path)
    if record.status == ProgressStatus.FAILED:
        return ApiResponse(success=False, message=record.error or "Operation failed", data=result.model_dump())
    return ApiResponse.ok(result.model_dump(), done_message)


@router.post("/compress", response_model=ApiResponse)
def compress(
    request: CompressRequest,
    service: ArchiveService = Depends(get_archive_service),
):
    """
    Zip files and folders into one archive.

    Raises:
        - 403: Output path escapes the site root
        - 404: None of the inputs exists
    """
    op_id = service.compress(request.paths, request.output, request.level)
    return _operation_result(service, op_id, "Archive created")


@router.post("/extract", response_model=ApiResponse)
def extract(
    request: ExtractRequest,
    service: ArchiveService = Depends(get_archive_service),
):
    """
    Unpack a zip archive.

    Raises:
        - 400: Not a zip file
        - 403: An archive entry escapes the destination
        - 404: Archive not found
    """
    op_id = service.extract(request.source, request.destination)
    return _operation_result(service, op_id, "Archive extracted")
