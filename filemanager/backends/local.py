"""Local filesystem backend implementation."""

from __future__ import annotations

import errno
import os
import shutil
import stat
import subprocess
from typing import BinaryIO, Iterator, List, Tuple

from common.constants import DEFAULT_DIR_MODE
from common.logging_config import get_logger
from common.types import FileStat
from filemanager.backends.errors import os_errors, translate_os_error
from filemanager.exceptions import IOFailureError, NotAFolderError
from filemanager.utils import sort_entries

logger = get_logger(__name__)


def _to_file_stat(path: str, info: os.stat_result) -> FileStat:
    return FileStat(
        name=os.path.basename(path) or path,
        path=path,
        size=info.st_size,
        is_dir=stat.S_ISDIR(info.st_mode),
        mode=stat.S_IMODE(info.st_mode),
        modified=info.st_mtime,
    )


class LocalBackend:
    """
    Direct syscalls against the machine the service runs on.
    """

    is_remote = False

    def __enter__(self) -> "LocalBackend":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def stat(self, path: str) -> FileStat:
        with os_errors(path):
            return _to_file_stat(path, os.stat(path))

    def exists(self, path: str) -> bool:
        return os.path.lexists(path)

    def list(self, path: str) -> List[FileStat]:
        if not self.stat(path).is_dir:
            raise NotAFolderError(f"{path}: not a folder")

        items = []
        with os_errors(path):
            with os.scandir(path) as entries:
                for entry in entries:
                    try:
                        items.append(_to_file_stat(entry.path, entry.stat()))
                    except OSError as e:
                        # dangling symlinks and entries removed mid-listing
                        logger.debug(f"Skipping unreadable entry {entry.path}: {e}")
        return sort_entries(items)

    def open(self, path: str) -> BinaryIO:
        with os_errors(path):
            return open(path, "rb")

    def create(self, path: str) -> BinaryIO:
        with os_errors(path):
            return open(path, "wb")

    def mkdir_all(self, path: str) -> None:
        with os_errors(path):
            os.makedirs(path, mode=DEFAULT_DIR_MODE, exist_ok=True)

    def rename(self, src: str, dst: str) -> None:
        try:
            os.rename(src, dst)
            return
        except OSError as e:
            if e.errno != errno.EXDEV:
                raise translate_os_error(e, src) from e

        logger.info(f"Cross-device rename {src} -> {dst}, falling back to copy and delete")
        if self.stat(src).is_dir:
            self.copy_tree(src, dst)
        else:
            self.copy_file(src, dst)
        self.remove_recursive(src)

    def remove(self, path: str) -> None:
        with os_errors(path):
            if os.path.isdir(path) and not os.path.islink(path):
                os.rmdir(path)
            else:
                os.remove(path)

    def remove_recursive(self, path: str) -> None:
        with os_errors(path):
            if os.path.isdir(path) and not os.path.islink(path):
                shutil.rmtree(path)
            else:
                os.remove(path)

    def copy_file(self, src: str, dst: str) -> None:
        with os_errors(src):
            os.makedirs(os.path.dirname(dst), mode=DEFAULT_DIR_MODE, exist_ok=True)
            shutil.copy2(src, dst)

    def copy_tree(self, src: str, dst: str) -> None:
        with os_errors(src):
            shutil.copytree(src, dst, symlinks=True, dirs_exist_ok=True)

    def walk(self, path: str) -> Iterator[Tuple[str, FileStat]]:
        """
        Pre-order depth-first walk below ``path`` (``path`` itself excluded).

        Symlinked directories are reported but not descended into.
        """
        for entry in self.list(path):
            yield entry.path, entry
            if entry.is_dir and not os.path.islink(entry.path):
                yield from self.walk(entry.path)

    def dir_size(self, path: str) -> int:
        info = self.stat(path)
        if not info.is_dir:
            return info.size
        return sum(entry.size for _, entry in self.walk(path) if not entry.is_dir)

    def chmod(self, path: str, mode: int) -> None:
        with os_errors(path):
            os.chmod(path, mode)

    def chown(self, path: str, owner: str, recursive: bool = False) -> None:
        command = ["chown"]
        if recursive:
            command.append("-R")
        command.extend([f"{owner}:{owner}", "--", path])

        try:
            result = subprocess.run(command, capture_output=True, text=True, check=False)
        except OSError as e:
            raise IOFailureError(f"chown could not be executed for {path}: {e}") from e

        if result.returncode != 0:
            output = (result.stderr or result.stdout).strip()
            raise IOFailureError(f"chown failed for {path}: exit {result.returncode}, output: {output}")

    def close(self) -> None:
        pass
