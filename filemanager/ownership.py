"""Best-effort re-application of tenant ownership to created paths."""

from common.logging_config import get_logger
from filemanager.backends.base import StorageBackend
from filemanager.exceptions import FileManagerError

logger = get_logger(__name__)


class OwnershipEnforcer:
    """
    Hands new paths over to the tenant's system user.

    Ownership is a convenience, not a correctness property: a failing chown
    is logged and never changes the outcome of the operation that asked
    for it.
    """

    def __init__(self, backend: StorageBackend, owner: str):
        self.backend = backend
        self.owner = owner

    def apply(self, path: str, recursive: bool = False) -> bool:
        """
        Change the owner of ``path`` to ``owner:owner``.

        Args:
            path: Absolute path that was just created
            recursive: Apply to everything below a directory as well

        Returns:
            True if ownership was applied, False if skipped or failed
        """
        if not self.owner:
            logger.debug(f"No owner configured, leaving ownership of {path} unchanged")
            return False

        try:
            self.backend.chown(path, self.owner, recursive=recursive)
        except FileManagerError as e:
            logger.warning(f"Failed to set owner {self.owner} on {path}: {e}")
            return False

        logger.debug(f"Set owner {self.owner} on {path} (recursive={recursive})")
        return True
