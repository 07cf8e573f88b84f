"""Shared pytest fixtures for all tests."""

import pytest

from filemanager.backends.local import LocalBackend
from filemanager.chunk_sessions import ChunkSessionStore
from filemanager.chunk_storage import ChunkScratchStorage
from filemanager.ownership import OwnershipEnforcer
from filemanager.progress import ProgressRegistry
from filemanager.sandbox import PathSandbox
from filemanager.services import ArchiveService, FileManagerService, TransferService

TENANT = "acme"


@pytest.fixture
def tenant_root(tmp_path):
    """
    Create the tenant's root directory.

    Args:
        tmp_path: pytest tmp_path fixture

    Returns:
        Path to an empty site directory
    """
    root = tmp_path / TENANT
    root.mkdir()
    return root


@pytest.fixture
def sandbox(tenant_root):
    return PathSandbox(str(tenant_root))


@pytest.fixture
def backend():
    return LocalBackend()


@pytest.fixture
def registry():
    return ProgressRegistry()


@pytest.fixture
def sessions():
    return ChunkSessionStore()


@pytest.fixture
def scratch(tmp_path):
    return ChunkScratchStorage(str(tmp_path / "scratch"))


@pytest.fixture
def ownership(backend):
    """Ownership enforcer with no owner, so nothing shells out to chown."""
    return OwnershipEnforcer(backend, "")


@pytest.fixture
def transfer_service(backend, sandbox, registry, sessions, scratch, ownership):
    return TransferService(backend, sandbox, registry, sessions, scratch, ownership, tenant=TENANT)


@pytest.fixture
def archive_service(backend, sandbox, registry, ownership):
    return ArchiveService(backend, sandbox, registry, ownership)


@pytest.fixture
def file_service(backend, sandbox, ownership):
    return FileManagerService(backend, sandbox, ownership)


@pytest.fixture
def sample_tree(tenant_root):
    """
    Create a small directory tree for archive and copy tests.

    Layout::

        docs/a.txt
        docs/sub/b.txt
        top.txt

    Returns:
        The tenant root Path
    """
    (tenant_root / "docs" / "sub").mkdir(parents=True)
    (tenant_root / "docs" / "a.txt").write_text("alpha")
    (tenant_root / "docs" / "sub" / "b.txt").write_text("bravo" * 100)
    (tenant_root / "top.txt").write_text("top level")
    return tenant_root
