"""Shared data type definitions (FileStat, FileInfo, RemoteDescriptor, TenantContext)."""

from dataclasses import dataclass
from typing import Optional

from common.constants import DEFAULT_SSH_PORT, DEFAULT_SSH_USERNAME


@dataclass(frozen=True)
class FileStat:
    """
    Backend-neutral stat result for a single path.
    """
    name: str
    path: str
    size: int
    is_dir: bool
    mode: int
    modified: float


@dataclass(frozen=True)
class RemoteDescriptor:
    """
    Connection details for a tenant whose files live on an SSH host.
    """
    host: str
    private_key: str
    port: int = DEFAULT_SSH_PORT
    username: str = DEFAULT_SSH_USERNAME

    def __repr__(self) -> str:
        return f"RemoteDescriptor(host={self.host!r}, port={self.port}, username={self.username!r})"


@dataclass(frozen=True)
class TenantContext:
    """
    Everything the core needs from the authentication layer.
    """
    identity: str
    root: str
    remote: Optional[RemoteDescriptor] = None

    @property
    def is_remote(self) -> bool:
        return self.remote is not None


@dataclass(frozen=True)
class FileInfo:
    """
    Tenant-facing view of a path: relative location plus display fields.
    """
    name: str
    path: str
    size: int
    is_dir: bool
    modified: float
    permissions: str
    extension: str = ""
    mime_type: str = ""
