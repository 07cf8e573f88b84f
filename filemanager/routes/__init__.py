"""API routes package."""

from filemanager.routes.archive_routes import router as archive_router
from filemanager.routes.fs_routes import router as fs_router
from filemanager.routes.progress_routes import router as progress_router
from filemanager.routes.upload_routes import router as upload_router

__all__ = ["archive_router", "fs_router", "progress_router", "upload_router"]
