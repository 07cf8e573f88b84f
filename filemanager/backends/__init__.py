"""Storage backends and the factory that selects one per tenant."""

from contextlib import contextmanager
from typing import Iterator

from common.logging_config import get_logger
from common.types import TenantContext
from filemanager.backends.base import StorageBackend
from filemanager.backends.local import LocalBackend
from filemanager.backends.remote import RemoteBackend

logger = get_logger(__name__)


def create_backend(tenant: TenantContext) -> StorageBackend:
    """
    Build the backend matching the tenant's configuration.

    Args:
        tenant: Tenant identity, root and optional remote descriptor

    Returns:
        A connected backend; the caller owns it and must close it

    Raises:
        RemoteConnectionFailedError: If the SSH session cannot be opened
    """
    if tenant.remote is not None:
        logger.debug(f"Opening remote backend for tenant {tenant.identity} on {tenant.remote.host}")
        return RemoteBackend(tenant.remote)
    return LocalBackend()


@contextmanager
def open_backend(tenant: TenantContext) -> Iterator[StorageBackend]:
    """Scoped backend: closed on every exit path, including errors."""
    backend = create_backend(tenant)
    try:
        yield backend
    finally:
        backend.close()


__all__ = [
    "StorageBackend",
    "LocalBackend",
    "RemoteBackend",
    "create_backend",
    "open_backend",
]
