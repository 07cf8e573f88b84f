"""FastAPI dependencies wiring a request's tenant to backends and services."""

from typing import Iterator

from fastapi import Depends

from common.types import TenantContext
from filemanager.auth import get_tenant_context
from filemanager.backends import StorageBackend, open_backend
from filemanager.ownership import OwnershipEnforcer
from filemanager.sandbox import PathSandbox
from filemanager.service_locator import (
    get_progress_registry,
    get_scratch_storage,
    get_session_store,
)
from filemanager.services import ArchiveService, FileManagerService, TransferService


def get_backend(tenant: TenantContext = Depends(get_tenant_context)) -> Iterator[StorageBackend]:
    """One backend per request, closed when the request is done."""
    with open_backend(tenant) as backend:
        yield backend


def get_sandbox(tenant: TenantContext = Depends(get_tenant_context)) -> PathSandbox:
    return PathSandbox(tenant.root)


def get_ownership(
    tenant: TenantContext = Depends(get_tenant_context),
    backend: StorageBackend = Depends(get_backend),
) -> OwnershipEnforcer:
    return OwnershipEnforcer(backend, tenant.identity)


def get_file_service(
    backend: StorageBackend = Depends(get_backend),
    sandbox: PathSandbox = Depends(get_sandbox),
    ownership: OwnershipEnforcer = Depends(get_ownership),
) -> FileManagerService:
    return FileManagerService(backend, sandbox, ownership)


def get_transfer_service(
    tenant: TenantContext = Depends(get_tenant_context),
    backend: StorageBackend = Depends(get_backend),
    sandbox: PathSandbox = Depends(get_sandbox),
    ownership: OwnershipEnforcer = Depends(get_ownership),
) -> TransferService:
    return TransferService(
        backend=backend,
        sandbox=sandbox,
        registry=get_progress_registry(),
        sessions=get_session_store(),
        scratch=get_scratch_storage(),
        ownership=ownership,
        tenant=tenant.identity,
    )


def get_archive_service(
    backend: StorageBackend = Depends(get_backend),
    sandbox: PathSandbox = Depends(get_sandbox),
    ownership: OwnershipEnforcer = Depends(get_ownership),
) -> ArchiveService:
    return ArchiveService(backend, sandbox, get_progress_registry(), ownership)
