"""File manager operations on a tenant's sandboxed tree."""

import dataclasses
import posixpath
from typing import BinaryIO, List, Sequence, Tuple, Union

from common.logging_config import get_logger
from common.types import FileInfo, FileStat
from filemanager.backends.base import StorageBackend
from filemanager.exceptions import (
    AlreadyExistsError,
    InvalidRequestError,
    NotAFileError,
    NotAFolderError,
    NotFoundError,
)
from filemanager.ownership import OwnershipEnforcer
from filemanager.sandbox import PathSandbox, is_within
from filemanager.utils import (
    copy_stream,
    format_permissions,
    get_extension,
    get_mime_type,
    unique_path,
)

logger = get_logger(__name__)

Content = Union[bytes, BinaryIO]


def validate_new_name(new_name: str) -> str:
    """
    Check that a rename target is a single path segment.

    Raises:
        InvalidRequestError: On empty names, separators, ``.``/``..`` or NUL
    """
    name = (new_name or "").strip()
    if not name or name in (".", "..") or "/" in name or "\\" in name or "\x00" in name:
        raise InvalidRequestError(f"invalid name: {new_name!r}")
    return name


class FileManagerService:
    def __init__(self, backend: StorageBackend, sandbox: PathSandbox, ownership: OwnershipEnforcer):
        self.backend = backend
        self.sandbox = sandbox
        self.ownership = ownership

    def _to_info(self, entry: FileStat) -> FileInfo:
        return FileInfo(
            name=entry.name if not self.sandbox.is_root(entry.path) else "/",
            path=self.sandbox.relative_of(entry.path),
            size=entry.size,
            is_dir=entry.is_dir,
            modified=entry.modified,
            permissions=format_permissions(entry.mode),
            extension="" if entry.is_dir else get_extension(entry.name),
            mime_type="" if entry.is_dir else get_mime_type(entry.name),
        )

    def _require(self, absolute: str, relative: str) -> FileStat:
        if not self.backend.exists(absolute):
            raise NotFoundError(f"{relative}: not found")
        return self.backend.stat(absolute)

    def _write(self, absolute: str, content: Content) -> None:
        with self.backend.create(absolute) as handle:
            if isinstance(content, (bytes, bytearray)):
                handle.write(content)
            else:
                copy_stream(content, handle)

    def list(self, path: str = "") -> List[FileInfo]:
        """
        List a directory: folders first, then files, by name.

        Raises:
            NotFoundError: If the directory does not exist
            NotAFolderError: If the path is a file
        """
        absolute = self.sandbox.resolve(path)
        self._require(absolute, path)
        return [self._to_info(entry) for entry in self.backend.list(absolute)]

    def get_info(self, path: str) -> FileInfo:
        """
        Describe a single path.

        Local directories report their recursive size; remote ones report
        what SFTP stat returns, use :meth:`disk_usage` for the real figure.
        """
        absolute = self.sandbox.resolve(path)
        entry = self._require(absolute, path)
        info = self._to_info(entry)
        if entry.is_dir and not self.backend.is_remote:
            info = dataclasses.replace(info, size=self.backend.dir_size(absolute))
        return info

    def open_content(self, path: str) -> Tuple[BinaryIO, FileInfo]:
        """
        Open a file for streaming to the client.

        Returns:
            Tuple of (open binary stream, file info); the caller closes the stream
        """
        absolute = self.sandbox.resolve(path)
        entry = self._require(absolute, path)
        if entry.is_dir:
            raise NotAFileError(f"{path}: not a file")
        return self.backend.open(absolute), self._to_info(entry)

    def create_file(self, path: str, content: Content = b"") -> FileInfo:
        absolute = self.sandbox.resolve(path)
        if self.backend.exists(absolute):
            raise AlreadyExistsError(f"{path}: already exists")

        self.backend.mkdir_all(posixpath.dirname(absolute))
        self._write(absolute, content)
        self.ownership.apply(absolute)
        logger.info(f"Created file {absolute}")
        return self._to_info(self.backend.stat(absolute))

    def update_file(self, path: str, content: Content) -> FileInfo:
        absolute = self.sandbox.resolve(path)
        if self._require(absolute, path).is_dir:
            raise NotAFileError(f"{path}: not a file")

        self._write(absolute, content)
        self.ownership.apply(absolute)
        logger.info(f"Updated file {absolute}")
        return self._to_info(self.backend.stat(absolute))

    def create_folder(self, path: str) -> FileInfo:
        absolute = self.sandbox.resolve(path)
        if self.backend.exists(absolute):
            raise AlreadyExistsError(f"{path}: already exists")

        self.backend.mkdir_all(absolute)
        self.ownership.apply(absolute)
        logger.info(f"Created folder {absolute}")
        return self._to_info(self.backend.stat(absolute))

    def rename(self, path: str, new_name: str) -> FileInfo:
        """
        Rename a path within its own directory.

        Raises:
            InvalidRequestError: If ``new_name`` is not a single segment or
                the path is the tenant root
            NotFoundError: If the path does not exist
            AlreadyExistsError: If the new name is taken
        """
        name = validate_new_name(new_name)
        absolute = self.sandbox.resolve(path)
        if self.sandbox.is_root(absolute):
            raise InvalidRequestError("the root folder cannot be renamed")
        self._require(absolute, path)

        target = posixpath.join(posixpath.dirname(absolute), name)
        if self.backend.exists(target):
            raise AlreadyExistsError(f"{self.sandbox.relative_of(target)}: already exists")

        self.backend.rename(absolute, target)
        logger.info(f"Renamed {absolute} -> {target}")
        return self._to_info(self.backend.stat(target))

    def delete(self, path: str, recursive: bool = False) -> None:
        """
        Delete a file or folder.

        Raises:
            InvalidRequestError: If the path is the tenant root
            NotFoundError: If the path does not exist
            FolderNotEmptyError: On a populated folder without ``recursive``
        """
        absolute = self.sandbox.resolve(path)
        if self.sandbox.is_root(absolute):
            raise InvalidRequestError("the root folder cannot be deleted")
        self._require(absolute, path)

        if recursive:
            self.backend.remove_recursive(absolute)
        else:
            self.backend.remove(absolute)
        logger.info(f"Deleted {absolute} (recursive={recursive})")

    def _prepare_destination(self, destination: str) -> str:
        absolute = self.sandbox.resolve(destination)
        if self.backend.exists(absolute):
            if not self.backend.stat(absolute).is_dir:
                raise NotAFolderError(f"{destination}: not a folder")
        else:
            self.backend.mkdir_all(absolute)
            self.ownership.apply(absolute)
        return absolute

    def _transfer(self, sources: Sequence[str], destination: str, overwrite: bool, move: bool) -> List[FileInfo]:
        verb = "Moved" if move else "Copied"
        resolved = [(source, self.sandbox.resolve(source)) for source in sources]
        target_dir = self._prepare_destination(destination)

        results = []
        for source, absolute in resolved:
            if self.sandbox.is_root(absolute):
                raise InvalidRequestError("the root folder cannot be copied or moved")
            if not self.backend.exists(absolute):
                logger.debug(f"Skipping missing source {source!r}")
                continue

            entry = self.backend.stat(absolute)
            if entry.is_dir and is_within(absolute, target_dir):
                raise InvalidRequestError(f"{source}: cannot be placed inside itself")

            target = posixpath.join(target_dir, entry.name)
            if move and target == absolute:
                results.append(self._to_info(entry))
                continue

            if self.backend.exists(target):
                if overwrite and target != absolute:
                    self.backend.remove_recursive(target)
                else:
                    target = unique_path(target, self.backend.exists)

            if move:
                self.backend.rename(absolute, target)
            elif entry.is_dir:
                self.backend.copy_tree(absolute, target)
            else:
                self.backend.copy_file(absolute, target)

            self.ownership.apply(target, recursive=entry.is_dir)
            logger.info(f"{verb} {absolute} -> {target}")
            results.append(self._to_info(self.backend.stat(target)))
        return results

    def copy(self, sources: Sequence[str], destination: str, overwrite: bool = False) -> List[FileInfo]:
        """
        Copy files and folders into ``destination``.

        Missing sources are skipped; name clashes get a ``_N`` suffix unless
        ``overwrite`` replaces the existing entry.

        Returns:
            Info for every path that was produced
        """
        return self._transfer(sources, destination, overwrite, move=False)

    def move(self, sources: Sequence[str], destination: str, overwrite: bool = False) -> List[FileInfo]:
        """Same contract as :meth:`copy`, but the sources go away."""
        return self._transfer(sources, destination, overwrite, move=True)

    def disk_usage(self, path: str = "") -> int:
        absolute = self.sandbox.resolve(path)
        self._require(absolute, path)
        return self.backend.dir_size(absolute)
