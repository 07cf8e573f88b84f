"""Entry point for the file manager service."""

import time
import uuid

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from common.logging_config import setup_logging
from filemanager.cleanup_task import StaleRecordReaper
from filemanager.config import FILEMANAGER_HOST, FILEMANAGER_PORT
from filemanager.exceptions import (
    AlreadyExistsError,
    FileManagerError,
    FolderNotEmptyError,
    InvalidAPIKeyError,
    InvalidRequestError,
    IOFailureError,
    NotAFileError,
    NotAFolderError,
    NotFoundError,
    RemoteConnectionFailedError,
    TraversalRejectedError,
)
from filemanager.routes import archive_router, fs_router, progress_router, upload_router
from filemanager.schemas.common import ApiResponse
from filemanager.service_locator import (
    get_progress_registry,
    get_scratch_storage,
    get_session_store,
)

logger = setup_logging("filemanager")

app = FastAPI(
    title="Tenant File Manager",
    description="Sandboxed file management over local disks and SSH hosts",
    version="1.0.0",
)

reaper = StaleRecordReaper(get_progress_registry(), get_session_store(), get_scratch_storage())


def _error_response(status_code: int, code: str, exc: Exception) -> JSONResponse:
    body = ApiResponse.fail(code=code, message=str(exc), details=str(exc))
    return JSONResponse(status_code=status_code, content=body.model_dump())


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    Middleware to log all HTTP requests and responses.
    """
    request_id = str(uuid.uuid4())
    request.state.request_id = request_id

    start_time = time.time()

    site = request.headers.get("x-user-site")

    logger.info(
        f"Request started: {request.method} {request.url.path} [request_id={request_id}] [site={site or 'anonymous'}]"
    )

    response = await call_next(request)

    duration = time.time() - start_time

    logger.info(
        f"Request completed: {request.method} {request.url.path} "
        f"status={response.status_code} duration={duration:.3f}s [request_id={request_id}]"
    )

    response.headers["X-Request-ID"] = request_id

    return response


@app.on_event("startup")
async def startup_event():
    """
    Prepare scratch space and start background tasks on application startup.
    """
    logger.info("File manager service starting up...")

    get_scratch_storage().ensure_base_directory()
    logger.info(f"Chunk scratch directory ready at {get_scratch_storage().base_dir}")

    await reaper.start()


@app.on_event("shutdown")
async def shutdown_event():
    """
    Cleanup resources on application shutdown.
    """
    logger.info("File manager service shutting down...")

    await reaper.stop()


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    request_id = getattr(request.state, 'request_id', 'unknown')
    logger.warning(
        f"Not found error: {exc} [request_id={request_id}] path={request.url.path}"
    )
    return _error_response(status.HTTP_404_NOT_FOUND, "NOT_FOUND", exc)


@app.exception_handler(AlreadyExistsError)
async def already_exists_handler(request: Request, exc: AlreadyExistsError):
    request_id = getattr(request.state, 'request_id', 'unknown')
    logger.warning(
        f"Already exists error: {exc} [request_id={request_id}] path={request.url.path}"
    )
    return _error_response(status.HTTP_409_CONFLICT, "ALREADY_EXISTS", exc)


@app.exception_handler(FolderNotEmptyError)
async def folder_not_empty_handler(request: Request, exc: FolderNotEmptyError):
    request_id = getattr(request.state, 'request_id', 'unknown')
    logger.warning(
        f"Folder not empty error: {exc} [request_id={request_id}] path={request.url.path}"
    )
    return _error_response(status.HTTP_409_CONFLICT, "FOLDER_NOT_EMPTY", exc)


@app.exception_handler(NotAFileError)
async def not_a_file_handler(request: Request, exc: NotAFileError):
    request_id = getattr(request.state, 'request_id', 'unknown')
    logger.warning(
        f"Not a file error: {exc} [request_id={request_id}] path={request.url.path}"
    )
    return _error_response(status.HTTP_400_BAD_REQUEST, "NOT_A_FILE", exc)


@app.exception_handler(NotAFolderError)
async def not_a_folder_handler(request: Request, exc: NotAFolderError):
    request_id = getattr(request.state, 'request_id', 'unknown')
    logger.warning(
        f"Not a folder error: {exc} [request_id={request_id}] path={request.url.path}"
    )
    return _error_response(status.HTTP_400_BAD_REQUEST, "NOT_A_FOLDER", exc)


@app.exception_handler(InvalidRequestError)
async def invalid_request_handler(request: Request, exc: InvalidRequestError):
    request_id = getattr(request.state, 'request_id', 'unknown')
    logger.warning(
        f"Invalid request error: {exc} [request_id={request_id}] path={request.url.path}"
    )
    return _error_response(status.HTTP_400_BAD_REQUEST, "INVALID_REQUEST", exc)


@app.exception_handler(TraversalRejectedError)
async def traversal_rejected_handler(request: Request, exc: TraversalRejectedError):
    request_id = getattr(request.state, 'request_id', 'unknown')
    site = request.headers.get("x-user-site", "unknown")
    logger.warning(
        f"Path traversal rejected: {exc} [request_id={request_id}] [site={site}] path={request.url.path}"
    )
    return _error_response(status.HTTP_403_FORBIDDEN, "PATH_TRAVERSAL", exc)


@app.exception_handler(InvalidAPIKeyError)
async def invalid_api_key_handler(request: Request, exc: InvalidAPIKeyError):
    request_id = getattr(request.state, 'request_id', 'unknown')
    logger.warning(
        f"Invalid API key error: {exc} [request_id={request_id}] path={request.url.path}"
    )
    return _error_response(status.HTTP_401_UNAUTHORIZED, "INVALID_API_KEY", exc)


@app.exception_handler(RemoteConnectionFailedError)
async def remote_connection_handler(request: Request, exc: RemoteConnectionFailedError):
    request_id = getattr(request.state, 'request_id', 'unknown')
    logger.error(
        f"SSH connection error: {exc} [request_id={request_id}] path={request.url.path}"
    )
    return _error_response(status.HTTP_502_BAD_GATEWAY, "SSH_ERROR", exc)


@app.exception_handler(IOFailureError)
async def io_failure_handler(request: Request, exc: IOFailureError):
    request_id = getattr(request.state, 'request_id', 'unknown')
    logger.error(
        f"I/O error: {exc} [request_id={request_id}] path={request.url.path}",
        exc_info=True
    )
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "IO_ERROR", exc)


@app.exception_handler(FileManagerError)
async def file_manager_exception_handler(request: Request, exc: FileManagerError):
    request_id = getattr(request.state, 'request_id', 'unknown')
    logger.error(
        f"File manager exception: {exc} [request_id={request_id}] path={request.url.path}",
        exc_info=True
    )
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "INTERNAL_ERROR", exc)


app.include_router(fs_router)
app.include_router(upload_router)
app.include_router(archive_router)
app.include_router(progress_router)


@app.get("/")
async def root():
    """
    Root endpoint for health check.
    """
    return {"message": "Tenant File Manager API", "status": "running"}


@app.get("/health")
async def health_check():
    """
    Health check endpoint for container healthchecks.
    Returns 200 if service is alive.
    """
    return {"status": "healthy", "service": "filemanager"}


@app.get("/api/v1/health")
async def api_health_check():
    """Liveness under the API prefix, no authentication."""
    return ApiResponse.ok({"status": "healthy", "active_operations": len(get_progress_registry())})


def main() -> None:
    """
    Start the FastAPI server with uvicorn.
    """
    uvicorn.run(
        "filemanager.main:app",
        host=FILEMANAGER_HOST,
        port=FILEMANAGER_PORT,
    )


if __name__ == "__main__":
    main()
