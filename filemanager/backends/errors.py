"""Translation of OS and SFTP errors into the file manager taxonomy."""

import errno
from contextlib import contextmanager
from typing import Iterator

from filemanager.exceptions import (
    AlreadyExistsError,
    FileManagerError,
    FolderNotEmptyError,
    IOFailureError,
    NotAFileError,
    NotAFolderError,
    NotFoundError,
)


def translate_os_error(exc: OSError, path: str) -> FileManagerError:
    """
    Map an ``OSError`` to the matching file manager exception.

    Args:
        exc: Error raised by ``os``, ``shutil`` or paramiko
        path: Path the operation was working on

    Returns:
        Exception instance to raise in its place
    """
    detail = exc.strerror or str(exc) or exc.__class__.__name__
    if isinstance(exc, FileNotFoundError) or exc.errno == errno.ENOENT:
        return NotFoundError(f"{path}: not found")
    if isinstance(exc, FileExistsError) or exc.errno == errno.EEXIST:
        return AlreadyExistsError(f"{path}: already exists")
    if isinstance(exc, NotADirectoryError):
        return NotAFolderError(f"{path}: not a folder")
    if isinstance(exc, IsADirectoryError):
        return NotAFileError(f"{path}: not a file")
    if exc.errno == errno.ENOTEMPTY:
        return FolderNotEmptyError(f"{path}: folder is not empty")
    return IOFailureError(f"{path}: {detail}")


@contextmanager
def os_errors(path: str) -> Iterator[None]:
    """Re-raise any ``OSError`` inside the block as a file manager error."""
    try:
        yield
    except OSError as exc:
        raise translate_os_error(exc, path) from exc
