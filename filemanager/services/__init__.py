"""Business logic services."""

from filemanager.services.archive_service import ArchiveService
from filemanager.services.file_service import FileManagerService
from filemanager.services.transfer_service import TransferService

__all__ = ["ArchiveService", "FileManagerService", "TransferService"]
