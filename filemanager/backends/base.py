"""Storage backend interface."""

from __future__ import annotations

from typing import BinaryIO, Iterator, List, Protocol, Tuple

from common.types import FileStat


class StorageBackend(Protocol):
    """
    Filesystem access strategy used by every service.

    All paths are absolute and already resolved by a PathSandbox.
    """

    @property
    def is_remote(self) -> bool:
        ...

    def stat(self, path: str) -> FileStat:
        ...

    def exists(self, path: str) -> bool:
        ...

    def list(self, path: str) -> List[FileStat]:
        ...

    def open(self, path: str) -> BinaryIO:
        ...

    def create(self, path: str) -> BinaryIO:
        ...

    def mkdir_all(self, path: str) -> None:
        ...

    def rename(self, src: str, dst: str) -> None:
        ...

    def remove(self, path: str) -> None:
        ...

    def remove_recursive(self, path: str) -> None:
        ...

    def copy_file(self, src: str, dst: str) -> None:
        ...

    def copy_tree(self, src: str, dst: str) -> None:
        ...

    def walk(self, path: str) -> Iterator[Tuple[str, FileStat]]:
        ...

    def dir_size(self, path: str) -> int:
        ...

    def chmod(self, path: str, mode: int) -> None:
        ...

    def chown(self, path: str, owner: str, recursive: bool = False) -> None:
        ...

    def close(self) -> None:
        ...
