"""Request authentication and tenant extraction from headers."""

import posixpath
import re
import secrets
from typing import Optional

from fastapi import Header

from common.constants import DEFAULT_SSH_PORT, DEFAULT_SSH_USERNAME
from common.types import RemoteDescriptor, TenantContext
from filemanager import config
from filemanager.exceptions import InvalidAPIKeyError, InvalidRequestError

_SITE_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


def decode_private_key(raw: str) -> str:
    """
    Undo the newline escaping clients use to fit a key into one header.

    Args:
        raw: Header value with literal ``\\n`` or ``%0A`` separators

    Returns:
        PEM/OpenSSH key text with real newlines
    """
    key = raw.replace("\\n", "\n").replace("%0A", "\n").replace("%0a", "\n")
    return key.strip() + "\n"


def validate_site(site: Optional[str]) -> str:
    """
    Check that a site name is one safe path segment.

    Raises:
        InvalidRequestError: If the name is missing or could leave the base path
    """
    name = (site or "").strip()
    if not name or not _SITE_PATTERN.match(name) or name in (".", ".."):
        raise InvalidRequestError(f"invalid site: {site!r}")
    return name


def verify_api_key(x_api_key: Optional[str] = Header(None)) -> None:
    """
    FastAPI dependency rejecting requests without the shared API key.

    Raises:
        InvalidAPIKeyError: If the header is missing or does not match
    """
    if not x_api_key or not secrets.compare_digest(x_api_key.encode("utf-8"), config.API_KEY.encode("utf-8")):
        raise InvalidAPIKeyError("Invalid or missing API key")


def get_tenant_context(
    x_api_key: Optional[str] = Header(None),
    x_user_site: Optional[str] = Header(None),
    x_ssh_host: Optional[str] = Header(None),
    x_ssh_port: Optional[str] = Header(None),
    x_ssh_username: Optional[str] = Header(None),
    x_ssh_key: Optional[str] = Header(None),
) -> TenantContext:
    """
    FastAPI dependency building the tenant from request headers.

    Args:
        x_api_key: Shared API key (required)
        x_user_site: Tenant name; also the system user that owns its files
        x_ssh_host: Remote host, selects the SFTP backend when present
        x_ssh_port: Remote SSH port (default 22)
        x_ssh_username: Remote login (default root)
        x_ssh_key: Private key with escaped newlines

    Returns:
        TenantContext rooted at ``<base path>/<site>``

    Raises:
        InvalidAPIKeyError: On a bad API key
        InvalidRequestError: On a bad site name or incomplete SSH headers
    """
    verify_api_key(x_api_key)
    site = validate_site(x_user_site)
    root = posixpath.join(config.BASE_PATH, site)

    remote = None
    if x_ssh_host:
        if not x_ssh_key:
            raise InvalidRequestError("X-Ssh-Key is required when X-Ssh-Host is set")
        try:
            port = int(x_ssh_port) if x_ssh_port else DEFAULT_SSH_PORT
        except ValueError:
            raise InvalidRequestError(f"invalid SSH port: {x_ssh_port!r}")
        remote = RemoteDescriptor(
            host=x_ssh_host.strip(),
            private_key=decode_private_key(x_ssh_key),
            port=port,
            username=(x_ssh_username or DEFAULT_SSH_USERNAME).strip(),
        )

    return TenantContext(identity=site, root=root, remote=remote)
